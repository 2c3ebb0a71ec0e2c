"""SDLC flow configuration.

FlowSettings is the single configuration object handed to every component.
It is a plain frozen dataclass so tests can construct it directly; only
``FlowSettings.from_env`` reads the process environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .errors import SettingsError


@dataclass(frozen=True, slots=True)
class ServiceEndpoint:
    """A named external service reachable at ``base_url``."""

    name: str
    base_url: str

    def url(self, path: str = '') -> str:
        if not path:
            return self.base_url
        return f'{self.base_url}/{path.lstrip("/")}'

    def __str__(self) -> str:
        return f'{self.name} ({self.base_url})'


@dataclass(frozen=True, slots=True)
class TrackedFile:
    """A file committed to the repository through the web editor."""

    name: str
    content: str


@dataclass(frozen=True, slots=True)
class FlowSettings:
    """Configuration for one SDLC flow run.

    Defaults match the docker-compose reference deployment.
    """

    # ── Service URLs ───────────────────────────────────────────────
    gitea_url: str = 'http://localhost:3000'
    jenkins_url: str = 'http://localhost:8080'
    nexus_url: str = 'http://localhost:8081'
    nginx_url: str = 'http://localhost:8088'
    sonar_url: str = 'http://localhost:9000'

    nexus_internal_url: str = 'http://nexus:8081'
    """Nexus URL as seen from inside the Jenkins container."""

    # ── Gitea ──────────────────────────────────────────────────────
    gitea_admin_user: str = 'admin'
    gitea_admin_pass: str = 'admin123!'
    gitea_admin_email: str = 'admin@example.com'
    gitea_site_title: str = 'hello-world'
    repo: str = 'hello-world'
    default_branch: str = 'main'
    issue_title: str = 'create hello-world app and deploy it to nginx'

    # ── SonarQube ──────────────────────────────────────────────────
    sonar_admin_user: str = 'admin'
    sonar_admin_pass: str = 'admin'
    """The product's known default password."""

    sonar_new_pass: str = ''
    """Operator override; also the target of a forced password change."""

    sonar_project_key: str = 'hello-world'
    sonar_project_name: str = 'hello-world'

    # ── Jenkins ────────────────────────────────────────────────────
    jenkins_admin_user: str = 'admin'
    jenkins_admin_pass: str = 'admin'
    seed_job: str = 'seed-job'
    pipeline_job: str = 'hello-world'

    # ── Artifact / content ─────────────────────────────────────────
    artifact_path: str = 'repository/web/hello-world/index.html'
    expected_text: str = 'hello world'

    # ── Timing (seconds) ───────────────────────────────────────────
    poll_interval_seconds: float = 2.0
    http_timeout_seconds: float = 20.0
    sonar_ready_timeout_seconds: float = 180.0
    gitea_ready_timeout_seconds: float = 180.0
    install_timeout_seconds: float = 120.0
    build_timeout_seconds: float = 180.0
    job_appearance_timeout_seconds: float = 120.0
    propagation_timeout_seconds: float = 120.0
    verify_timeout_seconds: float = 15.0
    """How long a freshly created resource may take to become visible."""
    settle_seconds: float = 1.0
    """Fixed delay after UI actions that update the page asynchronously."""

    headed: bool = False

    # ── Derived ────────────────────────────────────────────────────

    @property
    def gitea(self) -> ServiceEndpoint:
        return ServiceEndpoint('gitea', self.gitea_url)

    @property
    def jenkins(self) -> ServiceEndpoint:
        return ServiceEndpoint('jenkins', self.jenkins_url)

    @property
    def nexus(self) -> ServiceEndpoint:
        return ServiceEndpoint('nexus', self.nexus_url)

    @property
    def nginx(self) -> ServiceEndpoint:
        return ServiceEndpoint('nginx', self.nginx_url)

    @property
    def sonar(self) -> ServiceEndpoint:
        return ServiceEndpoint('sonarqube', self.sonar_url)

    @property
    def artifact_url(self) -> str:
        return self.nexus.url(self.artifact_path)

    @property
    def index_html(self) -> TrackedFile:
        return TrackedFile(
            'index.html',
            f'<html><body><h1>{self.expected_text}</h1></body></html>',
        )

    @property
    def jenkinsfile(self) -> TrackedFile:
        # Single line: the web editor auto-indents typed newlines.
        upload = (
            'PASS=$(cat /nexus-data/admin.password) && '
            'curl -fsS -u admin:$PASS --upload-file index.html '
            f'{self.nexus_internal_url.rstrip("/")}/{self.artifact_path}'
        )
        return TrackedFile(
            'Jenkinsfile',
            "pipeline { agent any; stages { stage('Publish to Nexus') "
            f"{{ steps {{ sh '{upload}' }} }} }} }}",
        )

    @property
    def tracked_files(self) -> tuple[TrackedFile, ...]:
        return (self.index_html, self.jenkinsfile)

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        for name in ('gitea_url', 'jenkins_url', 'nexus_url', 'nginx_url', 'sonar_url'):
            value = getattr(self, name)
            if not value.startswith(('http://', 'https://')):
                errors.append(f'{name} must be an http(s) URL, got {value!r}')
        for name in ('gitea_admin_user', 'sonar_admin_user', 'jenkins_admin_user', 'repo', 'issue_title'):
            if not getattr(self, name):
                errors.append(f'{name} is required')
        if self.sonar_new_pass and self.sonar_new_pass == self.sonar_admin_pass:
            errors.append('sonar_new_pass must differ from the default sonar_admin_pass')
        if self.poll_interval_seconds <= 0:
            errors.append('poll_interval_seconds must be > 0')
        return errors

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> FlowSettings:
        """Build settings from environment variables.

        Unset or empty variables fall back to the dataclass defaults.
        """
        d = cls()
        if env is None:
            env = dict(os.environ)

        def text(key: str, default: str) -> str:
            value = env.get(key, '')
            return value.strip() if value.strip() else default

        def url(key: str, default: str) -> str:
            return text(key, default).rstrip('/')

        def number(key: str, default: float) -> float:
            raw = env.get(key, '').strip()
            if not raw:
                return default
            try:
                return float(raw)
            except ValueError as exc:
                raise SettingsError(f'{key} must be a number, got {raw!r}') from exc

        return cls(
            gitea_url=url('GITEA_URL', d.gitea_url),
            jenkins_url=url('JENKINS_URL', d.jenkins_url),
            nexus_url=url('NEXUS_URL', d.nexus_url),
            nginx_url=url('NGINX_URL', d.nginx_url),
            sonar_url=url('SONAR_URL', d.sonar_url),
            nexus_internal_url=url('NEXUS_INTERNAL_URL', d.nexus_internal_url),
            gitea_admin_user=text('GITEA_ADMIN_USER', d.gitea_admin_user),
            gitea_admin_pass=text('GITEA_ADMIN_PASS', d.gitea_admin_pass),
            gitea_admin_email=text('GITEA_ADMIN_EMAIL', d.gitea_admin_email),
            gitea_site_title=text('GITEA_SITE_TITLE', d.gitea_site_title),
            repo=text('GITEA_REPO', d.repo),
            default_branch=text('DEFAULT_BRANCH', d.default_branch),
            issue_title=text('ISSUE_TITLE', d.issue_title),
            sonar_admin_user=text('SONAR_ADMIN_USER', d.sonar_admin_user),
            sonar_admin_pass=text('SONAR_ADMIN_PASS', d.sonar_admin_pass),
            sonar_new_pass=env.get('SONAR_NEW_PASS', '').strip(),
            sonar_project_key=text('SONAR_PROJECT_KEY', d.sonar_project_key),
            sonar_project_name=text('SONAR_PROJECT_NAME', d.sonar_project_name),
            jenkins_admin_user=text('JENKINS_ADMIN_USER', d.jenkins_admin_user),
            jenkins_admin_pass=text('JENKINS_ADMIN_PASS', d.jenkins_admin_pass),
            seed_job=text('SEED_JOB', d.seed_job),
            pipeline_job=text('PIPELINE_JOB', d.pipeline_job),
            artifact_path=text('ARTIFACT_PATH', d.artifact_path).lstrip('/'),
            expected_text=text('EXPECTED_TEXT', d.expected_text),
            poll_interval_seconds=number('POLL_INTERVAL_SECONDS', d.poll_interval_seconds),
            http_timeout_seconds=number('HTTP_TIMEOUT_SECONDS', d.http_timeout_seconds),
            sonar_ready_timeout_seconds=number('SONAR_READY_TIMEOUT_SECONDS', d.sonar_ready_timeout_seconds),
            gitea_ready_timeout_seconds=number('GITEA_READY_TIMEOUT_SECONDS', d.gitea_ready_timeout_seconds),
            install_timeout_seconds=number('INSTALL_TIMEOUT_SECONDS', d.install_timeout_seconds),
            build_timeout_seconds=number('BUILD_TIMEOUT_SECONDS', d.build_timeout_seconds),
            job_appearance_timeout_seconds=number(
                'JOB_APPEARANCE_TIMEOUT_SECONDS', d.job_appearance_timeout_seconds,
            ),
            propagation_timeout_seconds=number('PROPAGATION_TIMEOUT_SECONDS', d.propagation_timeout_seconds),
            verify_timeout_seconds=number('VERIFY_TIMEOUT_SECONDS', d.verify_timeout_seconds),
            settle_seconds=number('SETTLE_SECONDS', d.settle_seconds),
            headed=bool(env.get('HEADED', '').strip()),
        )
