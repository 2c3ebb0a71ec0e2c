"""Pipeline trigger and convergence waiting.

``trigger_and_await_success`` records the newest build number before
triggering, so only a build started after the trigger can satisfy it; a
build left over from an earlier run never does.

``verify_downstream_propagation`` polls a content target until the expected
text is observable. Raw targets are fetched with a direct request and
checked for a substring; browser targets compare the text of one element
exactly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from .errors import (
    BuildFailure,
    BuildTimeout,
    DownstreamPropagationTimeout,
    PollTimeout,
)
from .polling import poll_until

logger = logging.getLogger(__name__)


class BuildStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    SUCCESS = 'success'
    FAILURE = 'failure'
    UNKNOWN = 'unknown'


@dataclass(frozen=True, slots=True)
class BuildRun:
    """One observed build of a CI job."""

    job: str
    triggered_at: datetime
    status: BuildStatus
    number: int | None = None


@dataclass(frozen=True, slots=True)
class JobSnapshot:
    """The build permalinks of a job at one point in time.

    Attributes:
        last_build: Number of the newest build, running or not.
        last_build_building: Whether that build is still running.
        last_successful: Number of the newest successful build.
        last_completed: Number of the newest finished build.
        last_completed_result: Result string of that build (``SUCCESS``,
            ``FAILURE``, ``ABORTED``, ...).
    """

    last_build: int | None = None
    last_build_building: bool = False
    last_successful: int | None = None
    last_completed: int | None = None
    last_completed_result: str | None = None

    @property
    def newest_number(self) -> int:
        return max(
            n for n in (self.last_build, self.last_successful, self.last_completed, 0)
            if n is not None
        )

    def status_after(self, baseline: int) -> BuildStatus:
        """Status of the first build numbered above ``baseline``."""
        if self.last_successful is not None and self.last_successful > baseline:
            return BuildStatus.SUCCESS
        if self.last_completed is not None and self.last_completed > baseline:
            return BuildStatus.FAILURE
        if self.last_build is not None and self.last_build > baseline:
            return BuildStatus.RUNNING if self.last_build_building else BuildStatus.UNKNOWN
        return BuildStatus.PENDING


class CiServer(Protocol):
    """The operations the flow needs from a CI server."""

    async def job_exists(self, job: str) -> bool:
        ...

    async def job_snapshot(self, job: str) -> JobSnapshot | None:
        """Return the job's permalinks, or None if the job does not exist."""
        ...

    async def trigger(self, job: str) -> None:
        """Start a build, acknowledging any confirmation step."""
        ...


async def wait_for_job(
    ci: CiServer,
    job: str,
    *,
    timeout: float,
    interval: float,
) -> None:
    """Wait by name for a job that another job (a seed job) creates."""

    async def probe() -> bool:
        return await ci.job_exists(job)

    try:
        await poll_until(probe, interval=interval, timeout=timeout, description=f'job {job} to appear')
    except PollTimeout as exc:
        raise BuildTimeout(job, exc.elapsed, waiting_for='job definition') from exc
    logger.info('Job %s is present', job)


async def trigger_and_await_success(
    ci: CiServer,
    job: str,
    *,
    timeout: float,
    interval: float,
) -> BuildRun:
    """Trigger ``job`` and wait for a successful build newer than the trigger.

    Raises:
        BuildFailure: A build started after the trigger finished unsuccessfully.
        BuildTimeout: No build started after the trigger succeeded in time.
        BuildTriggerFailed: The CI server did not accept the trigger.
    """
    before = await ci.job_snapshot(job)
    baseline = before.newest_number if before else 0
    triggered_at = datetime.now(timezone.utc)

    logger.info('Triggering %s (newest existing build: #%d)', job, baseline)
    await ci.trigger(job)

    async def probe() -> BuildRun | None:
        snapshot = await ci.job_snapshot(job)
        if snapshot is None:
            return None
        status = snapshot.status_after(baseline)
        if status is BuildStatus.SUCCESS:
            return BuildRun(job, triggered_at, status, snapshot.last_successful)
        if status is BuildStatus.FAILURE:
            raise BuildFailure(
                job, snapshot.last_completed, snapshot.last_completed_result or 'UNKNOWN',
            )
        logger.debug('%s: %s', job, status.value)
        return None

    try:
        run = await poll_until(
            probe, interval=interval, timeout=timeout, description=f'{job} build',
        )
    except PollTimeout as exc:
        raise BuildTimeout(job, exc.elapsed) from exc

    logger.info('%s build #%s succeeded', job, run.number)
    return run


# ── Downstream propagation ─────────────────────────────────────────


class ContentAccess(str, Enum):
    RAW = 'raw'
    BROWSER = 'browser'


@dataclass(frozen=True, slots=True)
class ContentTarget:
    """Where to look for propagated content and what to expect there.

    ``raw`` targets match when ``expected`` occurs in the response body;
    ``browser`` targets match when the text of ``selector`` equals
    ``expected`` after stripping whitespace.
    """

    name: str
    url: str
    expected: str
    access: ContentAccess = ContentAccess.RAW
    selector: str | None = None

    def matches(self, observed: str | None) -> bool:
        if observed is None:
            return False
        if self.access is ContentAccess.BROWSER and self.selector:
            return observed.strip() == self.expected
        return self.expected in observed


class ContentFetcher(Protocol):
    async def fetch(self, target: ContentTarget) -> str | None:
        """Return the observed content, or None if nothing is served yet."""
        ...


async def verify_downstream_propagation(
    target: ContentTarget,
    *,
    fetcher: ContentFetcher,
    timeout: float,
    interval: float,
) -> str:
    """Poll ``target`` until it serves the expected content.

    Returns:
        The matching observed content.

    Raises:
        DownstreamPropagationTimeout: If the content never matches in time.
    """
    last_observed: list[str] = ['']

    async def probe() -> str | None:
        observed = await fetcher.fetch(target)
        if observed is not None:
            last_observed[0] = observed
        return observed if target.matches(observed) else None

    logger.info('Waiting for %s to serve %r (%s)', target.name, target.expected, target.access.value)
    try:
        observed = await poll_until(
            probe, interval=interval, timeout=timeout, description=target.name,
        )
    except PollTimeout as exc:
        raise DownstreamPropagationTimeout(
            target.url, target.expected, exc.elapsed, last_observed[0],
        ) from exc
    logger.info('%s serves the expected content', target.name)
    return observed
