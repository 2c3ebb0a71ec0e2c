"""Run the SDLC flow end to end as a fixed sequence of named steps.

Usage::

    flow = SdlcFlow(settings, services, ui)
    result = await flow.run()
    assert result.passed

Steps run strictly in order. The first step that raises is recorded as
``failed``, every later step as ``skipped``, and :class:`FlowStepFailed`
is raised from the original error with the partial :class:`FlowResult`
attached. Nothing is retried here; waits and retries live in the
components each step calls.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

import httpx

from .auth import Credential, CredentialNegotiator, CredentialState
from .ensure import EnsureOutcome, ResourceDescriptor, ResourceKind, ensure
from .errors import FlowStepFailed, ResourceMissing, SignInFailed
from .pipeline import (
    CiServer,
    ContentAccess,
    ContentFetcher,
    ContentTarget,
    trigger_and_await_success,
    verify_downstream_propagation,
    wait_for_job,
)
from .readiness import http_ok, sonar_status_is_up, wait_until_ready
from .settings import FlowSettings, TrackedFile

logger = logging.getLogger(__name__)


class StepOutcome(str, Enum):
    """Outcome of a single flow step."""

    CREATED = 'created'
    ALREADY_EXISTS = 'already_exists'
    DONE = 'done'
    FAILED = 'failed'
    SKIPPED = 'skipped'


_PASSING = frozenset({StepOutcome.CREATED, StepOutcome.ALREADY_EXISTS, StepOutcome.DONE})


@dataclass(frozen=True, slots=True)
class StepRecord:
    """Result of executing one named step."""

    name: str
    outcome: StepOutcome
    timestamp: str  # ISO-8601
    duration_ms: float
    detail: str = ''
    error: str | None = None

    @property
    def passed(self) -> bool:
        return self.outcome in _PASSING

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            'step': self.name,
            'outcome': self.outcome.value,
            'timestamp': self.timestamp,
            'duration_ms': round(self.duration_ms, 2),
        }
        if self.detail:
            result['detail'] = self.detail
        if self.error:
            result['error'] = self.error
        return result


@dataclass(frozen=True, slots=True)
class FlowResult:
    """Aggregate result of one flow run."""

    steps: tuple[StepRecord, ...]
    started_at: str  # ISO-8601
    finished_at: str  # ISO-8601
    total_duration_ms: float

    @property
    def passed(self) -> bool:
        return bool(self.steps) and all(s.passed for s in self.steps)

    @property
    def failed_step(self) -> StepRecord | None:
        for step in self.steps:
            if step.outcome is StepOutcome.FAILED:
                return step
        return None

    def outcome_of(self, name: str) -> StepOutcome | None:
        for step in self.steps:
            if step.name == name:
                return step.outcome
        return None

    def count(self, outcome: StepOutcome) -> int:
        return sum(1 for s in self.steps if s.outcome is outcome)

    def summary(self) -> dict[str, Any]:
        """Return a JSON-serializable summary of the result."""
        failed = self.failed_step
        return {
            'passed': self.passed,
            'steps': len(self.steps),
            'created': self.count(StepOutcome.CREATED),
            'already_exists': self.count(StepOutcome.ALREADY_EXISTS),
            'done': self.count(StepOutcome.DONE),
            'failed': self.count(StepOutcome.FAILED),
            'skipped': self.count(StepOutcome.SKIPPED),
            'failed_step': failed.name if failed else None,
            'duration_ms': round(self.total_duration_ms, 1),
        }

    def to_run_log(self) -> dict[str, Any]:
        return {
            'started_at': self.started_at,
            'finished_at': self.finished_at,
            'duration_ms': round(self.total_duration_ms, 2),
            'verdict': 'pass' if self.passed else 'fail',
            'summary': self.summary(),
            'steps': [s.to_dict() for s in self.steps],
        }


# ── Ports ──────────────────────────────────────────────────────────


class SonarService(Protocol):
    async def authenticate(self, credential: Credential) -> bool: ...

    async def change_password(self, credential: Credential, new_secret: str) -> None: ...

    async def needs_password_reset(self, credential: Credential) -> bool: ...

    async def project_exists(self, key: str, credential: Credential) -> bool: ...

    def session_cookies(self) -> list[dict[str, str]]: ...


class GiteaService(Protocol):
    async def is_installed(self) -> bool: ...

    async def repo_exists(self, owner: str, repo: str) -> bool: ...

    async def find_issue(self, owner: str, repo: str, title: str) -> dict[str, Any] | None: ...

    async def issue_state(self, owner: str, repo: str, title: str) -> str | None: ...

    async def file_exists(self, owner: str, repo: str, path: str) -> bool: ...


class Browser(ContentFetcher, Protocol):
    async def adopt_cookies(self, cookies: list[dict[str, str]]) -> None: ...


class SonarIntents(Protocol):
    async def ensure_signed_in(self, credential: Credential) -> None: ...

    async def rotation_prompt_visible(self) -> bool: ...

    async def create_project(self, *, name: str, key: str, main_branch: str) -> None: ...


class GiteaIntents(Protocol):
    async def complete_first_run_setup(
        self,
        *,
        site_title: str,
        admin_user: str,
        admin_pass: str,
        admin_email: str,
        timeout: float = ...,
    ) -> None: ...

    async def sign_in(self, user: str, password: str) -> None: ...

    async def create_repository(self, name: str, *, default_branch: str) -> None: ...

    async def create_issue(self, owner: str, repo: str, title: str) -> None: ...

    async def create_file(self, owner: str, repo: str, file: TrackedFile, *, branch: str) -> None: ...

    async def close_issue(self, owner: str, repo: str, number: int) -> None: ...


class JenkinsIntents(Protocol):
    async def sign_in(self, user: str, password: str) -> None: ...


@dataclass(frozen=True, slots=True)
class FlowServices:
    """Direct (non-browser) access to the services.

    Attributes:
        sonar_http: Client used for the SonarQube readiness probe.
        gitea_http: Client used for the Gitea readiness probe.
        ci: CI server; triggers go through the UI, status through the API.
        raw: Fetcher for byte-level artifact checks.
    """

    sonar_http: httpx.AsyncClient
    gitea_http: httpx.AsyncClient
    sonar: SonarService
    gitea: GiteaService
    ci: CiServer
    raw: ContentFetcher


@dataclass(frozen=True, slots=True)
class FlowUi:
    browser: Browser
    sonar: SonarIntents
    gitea: GiteaIntents
    jenkins: JenkinsIntents


StepAction = Callable[[], Awaitable[tuple[StepOutcome, str]]]


class SdlcFlow:
    """The end-to-end flow.

    Args:
        settings: Flow configuration.
        services: API clients.
        ui: UI intents and the browser session they share.
        negotiator: SonarQube credential negotiator. Built from
            ``services.sonar`` when omitted.
    """

    def __init__(
        self,
        settings: FlowSettings,
        services: FlowServices,
        ui: FlowUi,
        *,
        negotiator: CredentialNegotiator | None = None,
    ) -> None:
        self._settings = settings
        self._services = services
        self._ui = ui
        self._negotiator = negotiator or CredentialNegotiator(
            settings.sonar, probe=services.sonar, rotator=services.sonar,
        )
        self._sonar_credential: Credential | None = None

    @property
    def sonar_credential(self) -> Credential | None:
        """The SonarQube credential in use, once resolved."""
        return self._sonar_credential

    @property
    def _sonar_default(self) -> Credential:
        s = self._settings
        return Credential(s.sonar_admin_user, s.sonar_admin_pass, is_default=True)

    def steps(self) -> list[tuple[str, StepAction]]:
        """The named steps in execution order."""
        plan: list[tuple[str, StepAction]] = [
            ('sonar.ready', self._sonar_ready),
            ('sonar.credentials', self._sonar_credentials),
            ('sonar.sign_in', self._sonar_sign_in),
            ('sonar.project', self._sonar_project),
            ('gitea.ready', self._gitea_ready),
            ('gitea.install', self._gitea_install),
            ('gitea.sign_in', self._gitea_sign_in),
            ('gitea.repository', self._gitea_repository),
            ('gitea.issue', self._gitea_issue),
        ]
        for file in self._settings.tracked_files:
            plan.append((f'gitea.file:{file.name}', self._file_step(file)))
        plan += [
            ('jenkins.sign_in', self._jenkins_sign_in),
            ('jenkins.seed_job', self._jenkins_seed_job),
            ('jenkins.seed_build', self._jenkins_seed_build),
            ('jenkins.pipeline_job', self._jenkins_pipeline_job),
            ('jenkins.pipeline_build', self._jenkins_pipeline_build),
            ('nexus.artifact', self._nexus_artifact),
            ('nginx.page', self._nginx_page),
            ('gitea.close_issue', self._gitea_close_issue),
        ]
        return plan

    async def run(self) -> FlowResult:
        """Execute every step in order.

        Returns:
            FlowResult with one record per step, all passing.

        Raises:
            FlowStepFailed: A step raised. ``exc.result`` holds the partial
                result and ``__cause__`` the original error.
        """
        plan = self.steps()
        started_at = _now_iso()
        start = time.monotonic()
        records: list[StepRecord] = []

        for index, (name, action) in enumerate(plan):
            logger.info('[%d/%d] %s', index + 1, len(plan), name)
            timestamp = _now_iso()
            step_start = time.monotonic()
            try:
                outcome, detail = await action()
            except Exception as exc:
                elapsed = time.monotonic() - step_start
                records.append(StepRecord(
                    name=name,
                    outcome=StepOutcome.FAILED,
                    timestamp=timestamp,
                    duration_ms=elapsed * 1000,
                    error=f'{type(exc).__name__}: {exc}',
                ))
                for remaining, _ in plan[index + 1:]:
                    records.append(StepRecord(
                        name=remaining,
                        outcome=StepOutcome.SKIPPED,
                        timestamp=_now_iso(),
                        duration_ms=0.0,
                        detail='skipped due to prior failure',
                    ))
                result = _finish(records, started_at, start)
                logger.error('Step %s failed after %.1fs: %s', name, elapsed, exc)
                raise FlowStepFailed(name, elapsed, exc, result=result) from exc

            duration_ms = (time.monotonic() - step_start) * 1000
            records.append(StepRecord(
                name=name,
                outcome=outcome,
                timestamp=timestamp,
                duration_ms=duration_ms,
                detail=detail,
            ))
            logger.info('  %s: %s%s', name, outcome.value, f' ({detail})' if detail else '')

        result = _finish(records, started_at, start)
        logger.info('Flow passed in %.1fs', result.total_duration_ms / 1000)
        return result

    # ── SonarQube ──────────────────────────────────────────────────

    async def _sonar_ready(self) -> tuple[StepOutcome, str]:
        s = self._settings
        await wait_until_ready(
            self._services.sonar_http,
            s.sonar,
            status_path='/api/system/status',
            is_ready=sonar_status_is_up,
            timeout=s.sonar_ready_timeout_seconds,
            interval=s.poll_interval_seconds,
        )
        return StepOutcome.DONE, ''

    async def _sonar_credentials(self) -> tuple[StepOutcome, str]:
        s = self._settings
        sonar = self._services.sonar
        default = self._sonar_default
        candidates = [default]
        if s.sonar_new_pass:
            candidates.append(Credential(s.sonar_admin_user, s.sonar_new_pass))

        resolved = await self._negotiator.resolve_working_credential(candidates)

        async def api_demands_reset() -> bool:
            return await sonar.needs_password_reset(resolved)

        current = await self._negotiator.handle_forced_password_rotation(
            resolved,
            default=default,
            new_secret=s.sonar_new_pass,
            detectors=(api_demands_reset,),
        )
        if current.state is CredentialState.ROTATED:
            await self._reopen_sonar_session(current)

        self._sonar_credential = current
        return StepOutcome.DONE, f'{current.principal} ({current.state.value})'

    async def _sonar_sign_in(self) -> tuple[StepOutcome, str]:
        s = self._settings
        credential = self._require_sonar_credential()
        await self._ui.browser.adopt_cookies(self._services.sonar.session_cookies())
        await self._ui.sonar.ensure_signed_in(credential)

        current = await self._negotiator.handle_forced_password_rotation(
            credential,
            default=self._sonar_default,
            new_secret=s.sonar_new_pass,
            detectors=(self._ui.sonar.rotation_prompt_visible,),
        )
        if current.secret != credential.secret:
            await self._reopen_sonar_session(current)
            await self._ui.browser.adopt_cookies(self._services.sonar.session_cookies())
            await self._ui.sonar.ensure_signed_in(current)
            self._sonar_credential = current
        return StepOutcome.DONE, f'as {current.principal}'

    async def _reopen_sonar_session(self, credential: Credential) -> None:
        if not await self._services.sonar.authenticate(credential):
            raise SignInFailed(
                f'SonarQube rejected the rotated password for {credential.principal}'
            )

    def _require_sonar_credential(self) -> Credential:
        if self._sonar_credential is None:
            raise SignInFailed('SonarQube credential has not been resolved')
        return self._sonar_credential

    async def _sonar_project(self) -> tuple[StepOutcome, str]:
        s = self._settings
        credential = self._require_sonar_credential()

        async def exists() -> bool:
            return await self._services.sonar.project_exists(s.sonar_project_key, credential)

        async def create() -> None:
            await self._ui.sonar.create_project(
                name=s.sonar_project_name,
                key=s.sonar_project_key,
                main_branch=s.default_branch,
            )

        return await self._ensure(ResourceKind.PROJECT, s.sonar_project_key, exists, create)

    # ── Gitea ──────────────────────────────────────────────────────

    async def _gitea_ready(self) -> tuple[StepOutcome, str]:
        s = self._settings
        # Before installation Gitea answers / with the install page, which is fine here.
        await wait_until_ready(
            self._services.gitea_http,
            s.gitea,
            status_path='/',
            is_ready=http_ok,
            timeout=s.gitea_ready_timeout_seconds,
            interval=s.poll_interval_seconds,
        )
        return StepOutcome.DONE, ''

    async def _gitea_install(self) -> tuple[StepOutcome, str]:
        s = self._settings

        async def create() -> None:
            await self._ui.gitea.complete_first_run_setup(
                site_title=s.gitea_site_title,
                admin_user=s.gitea_admin_user,
                admin_pass=s.gitea_admin_pass,
                admin_email=s.gitea_admin_email,
                timeout=s.install_timeout_seconds,
            )

        return await self._ensure(
            ResourceKind.INSTALLATION,
            s.gitea_url,
            self._services.gitea.is_installed,
            create,
            verify_timeout=s.install_timeout_seconds,
        )

    async def _gitea_sign_in(self) -> tuple[StepOutcome, str]:
        s = self._settings
        await self._ui.gitea.sign_in(s.gitea_admin_user, s.gitea_admin_pass)
        return StepOutcome.DONE, f'as {s.gitea_admin_user}'

    async def _gitea_repository(self) -> tuple[StepOutcome, str]:
        s = self._settings
        owner = s.gitea_admin_user

        async def exists() -> bool:
            return await self._services.gitea.repo_exists(owner, s.repo)

        async def create() -> None:
            await self._ui.gitea.create_repository(s.repo, default_branch=s.default_branch)

        return await self._ensure(ResourceKind.REPOSITORY, f'{owner}/{s.repo}', exists, create)

    async def _gitea_issue(self) -> tuple[StepOutcome, str]:
        s = self._settings
        owner = s.gitea_admin_user

        async def exists() -> bool:
            return await self._services.gitea.find_issue(owner, s.repo, s.issue_title) is not None

        async def create() -> None:
            await self._ui.gitea.create_issue(owner, s.repo, s.issue_title)

        return await self._ensure(ResourceKind.ISSUE, s.issue_title, exists, create)

    def _file_step(self, file: TrackedFile) -> StepAction:
        s = self._settings
        owner = s.gitea_admin_user

        async def exists() -> bool:
            return await self._services.gitea.file_exists(owner, s.repo, file.name)

        async def create() -> None:
            await self._ui.gitea.create_file(owner, s.repo, file, branch=s.default_branch)

        async def step() -> tuple[StepOutcome, str]:
            return await self._ensure(ResourceKind.FILE, f'{s.repo}/{file.name}', exists, create)

        return step

    async def _gitea_close_issue(self) -> tuple[StepOutcome, str]:
        s = self._settings
        owner = s.gitea_admin_user
        gitea = self._services.gitea

        async def closed() -> bool:
            return await gitea.issue_state(owner, s.repo, s.issue_title) == 'closed'

        async def close() -> None:
            issue = await gitea.find_issue(owner, s.repo, s.issue_title)
            if issue is None:
                raise ResourceMissing(ResourceKind.ISSUE.value, s.issue_title)
            await self._ui.gitea.close_issue(owner, s.repo, int(issue['number']))

        outcome, _ = await self._ensure(ResourceKind.ISSUE, f'{s.issue_title} (closed)', closed, close)
        if outcome is StepOutcome.ALREADY_EXISTS:
            return StepOutcome.DONE, 'already closed'
        return StepOutcome.DONE, 'closed'

    # ── Jenkins ────────────────────────────────────────────────────

    async def _jenkins_sign_in(self) -> tuple[StepOutcome, str]:
        s = self._settings
        await self._ui.jenkins.sign_in(s.jenkins_admin_user, s.jenkins_admin_pass)
        return StepOutcome.DONE, f'as {s.jenkins_admin_user}'

    async def _jenkins_seed_job(self) -> tuple[StepOutcome, str]:
        job = self._settings.seed_job

        async def exists() -> bool:
            return await self._services.ci.job_exists(job)

        return await self._ensure(ResourceKind.JOB, job, exists, None)

    async def _jenkins_seed_build(self) -> tuple[StepOutcome, str]:
        return await self._build(self._settings.seed_job)

    async def _jenkins_pipeline_job(self) -> tuple[StepOutcome, str]:
        s = self._settings
        await wait_for_job(
            self._services.ci,
            s.pipeline_job,
            timeout=s.job_appearance_timeout_seconds,
            interval=s.poll_interval_seconds,
        )
        return StepOutcome.DONE, ''

    async def _jenkins_pipeline_build(self) -> tuple[StepOutcome, str]:
        return await self._build(self._settings.pipeline_job)

    async def _build(self, job: str) -> tuple[StepOutcome, str]:
        s = self._settings
        run = await trigger_and_await_success(
            self._services.ci,
            job,
            timeout=s.build_timeout_seconds,
            interval=s.poll_interval_seconds,
        )
        return StepOutcome.DONE, f'build #{run.number} {run.status.value}'

    # ── Downstream ─────────────────────────────────────────────────

    async def _nexus_artifact(self) -> tuple[StepOutcome, str]:
        s = self._settings
        target = ContentTarget('nexus artifact', s.artifact_url, s.expected_text)
        await verify_downstream_propagation(
            target,
            fetcher=self._services.raw,
            timeout=s.propagation_timeout_seconds,
            interval=s.poll_interval_seconds,
        )
        return StepOutcome.DONE, target.url

    async def _nginx_page(self) -> tuple[StepOutcome, str]:
        s = self._settings
        target = ContentTarget(
            'nginx page',
            s.nginx.url('/'),
            s.expected_text,
            access=ContentAccess.BROWSER,
            selector='h1',
        )
        await verify_downstream_propagation(
            target,
            fetcher=self._ui.browser,
            timeout=s.propagation_timeout_seconds,
            interval=s.poll_interval_seconds,
        )
        return StepOutcome.DONE, target.url

    # ── Helpers ────────────────────────────────────────────────────

    async def _ensure(
        self,
        kind: ResourceKind,
        key: str,
        exists: Callable[[], Awaitable[bool]],
        create: Callable[[], Awaitable[None]] | None,
        *,
        verify_timeout: float | None = None,
    ) -> tuple[StepOutcome, str]:
        s = self._settings
        outcome = await ensure(ResourceDescriptor(
            kind=kind,
            key=key,
            exists=exists,
            create=create,
            verify_timeout=s.verify_timeout_seconds if verify_timeout is None else verify_timeout,
            verify_interval=s.poll_interval_seconds,
        ))
        if outcome is EnsureOutcome.CREATED:
            return StepOutcome.CREATED, key
        return StepOutcome.ALREADY_EXISTS, key


def _finish(records: list[StepRecord], started_at: str, start: float) -> FlowResult:
    return FlowResult(
        steps=tuple(records),
        started_at=started_at,
        finished_at=_now_iso(),
        total_duration_ms=(time.monotonic() - start) * 1000,
    )


def _now_iso() -> str:
    """Return current UTC timestamp in ISO-8601."""
    return datetime.now(timezone.utc).isoformat()
