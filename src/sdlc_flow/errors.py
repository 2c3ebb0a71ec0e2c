"""Error hierarchy for the SDLC flow.

Every error is fatal to a run. Components retry only inside their own
polling loop; once an error escapes a component the orchestrator records the
failing step and re-raises.
"""

from __future__ import annotations

from typing import Any


class SdlcFlowError(Exception):
    """Base error for the SDLC flow."""


class SettingsError(SdlcFlowError, ValueError):
    """Raised when configuration values cannot be parsed."""


class PollTimeout(SdlcFlowError):
    """A poll loop exhausted its deadline without a truthy probe result."""

    def __init__(self, description: str, elapsed: float) -> None:
        self.description = description
        self.elapsed = elapsed
        super().__init__(f'{description}: not satisfied after {elapsed:.1f}s')


class ServiceAPIError(SdlcFlowError):
    """Unexpected HTTP status from a service API."""

    def __init__(
        self,
        service: str,
        status_code: int,
        message: str = '',
        *,
        response_body: str = '',
    ) -> None:
        self.service = service
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f'{service} API error {status_code}: {message}')


# ── Readiness ──────────────────────────────────────────────────────


class ReadinessTimeout(SdlcFlowError):
    """Service never reported a ready status before the deadline."""

    def __init__(self, endpoint: str, elapsed: float) -> None:
        self.endpoint = endpoint
        self.elapsed = elapsed
        super().__init__(
            f'{endpoint} did not become ready within {elapsed:.1f}s'
        )


# ── Credentials ────────────────────────────────────────────────────


class AuthExhaustedError(SdlcFlowError):
    """No candidate credential authenticated against the service."""

    def __init__(
        self,
        endpoint: str,
        principals: tuple[str, ...],
        *,
        override_configured: bool = True,
    ) -> None:
        self.endpoint = endpoint
        self.principals = principals
        self.override_configured = override_configured
        message = (
            f'Could not authenticate to {endpoint} with any candidate '
            f'credential (tried {len(principals)}: {", ".join(principals) or "none"})'
        )
        if not override_configured:
            message += '; the default password was rejected and no override password is set'
        super().__init__(message)


class AuthProbeUnavailable(SdlcFlowError):
    """The authentication probe could not reach the service."""

    def __init__(self, endpoint: str, detail: str) -> None:
        self.endpoint = endpoint
        self.detail = detail
        super().__init__(f'Authentication probe against {endpoint} failed: {detail}')


class PasswordRotationTargetMissing(SdlcFlowError):
    """The service forces a password change but no new password is configured."""

    def __init__(self, endpoint: str, setting: str = 'SONAR_NEW_PASS') -> None:
        self.endpoint = endpoint
        self.setting = setting
        super().__init__(
            f'{endpoint} requires a password update, but {setting} is not set'
        )


class PasswordRotationError(SdlcFlowError):
    """The password change call was rejected by every auth strategy."""

    def __init__(self, status_code: int, body: str = '') -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(
            f'Failed to change password via API: {status_code} {body[:200]}'.rstrip()
        )


class SignInFailed(SdlcFlowError):
    """UI sign-in did not leave the browser in an authenticated state."""


# ── Resources ──────────────────────────────────────────────────────


class ResourceError(SdlcFlowError):
    """Base for errors tied to one ensured resource."""

    def __init__(self, kind: str, key: str, message: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f'{kind} {key!r}: {message}')


class ResourceMissing(ResourceError):
    """A required resource is absent and this flow cannot create it."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(kind, key, 'not found and no creation procedure is available')


class ResourceCreationFailed(ResourceError):
    """The creation procedure itself raised."""

    def __init__(self, kind: str, key: str, detail: str) -> None:
        self.detail = detail
        super().__init__(kind, key, f'creation failed: {detail}')


class ResourceCreationVerificationFailed(ResourceError):
    """Creation reported no error but the resource is still absent."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(kind, key, 'still absent after creation')


# ── Builds and propagation ─────────────────────────────────────────


class BuildTimeoutOrFailure(SdlcFlowError):
    """Base for CI jobs that did not reach a successful build."""

    def __init__(self, job: str, message: str) -> None:
        self.job = job
        super().__init__(f'job {job!r}: {message}')


class BuildTimeout(BuildTimeoutOrFailure):
    def __init__(self, job: str, elapsed: float, *, waiting_for: str = 'a successful build') -> None:
        self.elapsed = elapsed
        super().__init__(job, f'no {waiting_for} after {elapsed:.1f}s')


class BuildFailure(BuildTimeoutOrFailure):
    def __init__(self, job: str, number: int | None, result: str) -> None:
        self.number = number
        self.result = result
        super().__init__(job, f'build #{number} finished with {result}')


class BuildTriggerFailed(BuildTimeoutOrFailure):
    """The trigger page offered nothing to confirm, so no build was queued."""

    def __init__(self, job: str, url: str) -> None:
        self.url = url
        super().__init__(job, f'no build confirmation shown at {url}')


class DownstreamPropagationTimeout(SdlcFlowError):
    """Expected content never appeared at a downstream system."""

    def __init__(self, target: str, expected: str, elapsed: float, last_observed: str = '') -> None:
        self.target = target
        self.expected = expected
        self.elapsed = elapsed
        self.last_observed = last_observed
        super().__init__(
            f'{target} did not serve {expected!r} within {elapsed:.1f}s'
            + (f' (last observed: {last_observed[:120]!r})' if last_observed else '')
        )


# ── Orchestration ──────────────────────────────────────────────────


class FlowStepFailed(SdlcFlowError):
    """Raised by the orchestrator to name the step that stopped the run."""

    def __init__(
        self,
        step: str,
        elapsed: float,
        cause: BaseException,
        *,
        result: Any = None,
    ) -> None:
        self.step = step
        self.elapsed = elapsed
        self.cause = cause
        self.result = result  # partial FlowResult, set by the orchestrator
        super().__init__(
            f'step {step!r} failed after {elapsed:.1f}s: {type(cause).__name__}: {cause}'
        )
