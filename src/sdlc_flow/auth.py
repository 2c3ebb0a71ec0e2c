"""Credential negotiation and forced password rotation.

Two concerns live here:

* ``CredentialNegotiator.resolve_working_credential`` finds which candidate
  credential currently authenticates, using a side-effect-free API probe.
* ``CredentialNegotiator.handle_forced_password_rotation`` performs the one
  allowed ``default -> rotated`` transition when the service demands it.

Password changes go through an ordered list of :class:`AuthStrategy`
objects (session cookie first, basic auth second); the next strategy is
only tried when the previous one is answered with 401/403.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, Sequence

import httpx

from .errors import (
    AuthExhaustedError,
    AuthProbeUnavailable,
    PasswordRotationTargetMissing,
    SdlcFlowError,
)
from .settings import ServiceEndpoint

logger = logging.getLogger(__name__)


class CredentialState(str, Enum):
    """Validity of a credential as observed during this run."""

    UNKNOWN = 'unknown'
    VALID = 'valid'
    DEFAULT = 'default'
    INVALID = 'invalid'
    ROTATED = 'rotated'


@dataclass(frozen=True, slots=True)
class Credential:
    """A principal/secret pair.

    ``is_default`` marks the product's well-known factory password, the
    only credential that may ever be rotated.
    """

    principal: str
    secret: str = field(repr=False)
    state: CredentialState = CredentialState.UNKNOWN
    is_default: bool = False

    def with_state(self, state: CredentialState) -> Credential:
        return replace(self, state=state)


# ── Auth strategies ────────────────────────────────────────────────


class AuthStrategy(Protocol):
    """Decorates one request with a particular authentication scheme."""

    name: str

    def request_kwargs(
        self, client: httpx.AsyncClient, credential: Credential,
    ) -> dict[str, Any]:
        ...


class SessionCookieAuth:
    """Rely on the session cookie already held by the client.

    SonarQube also expects the ``XSRF-TOKEN`` cookie echoed back as a header
    on state-changing requests.
    """

    name = 'session-cookie'

    def request_kwargs(
        self, client: httpx.AsyncClient, credential: Credential,
    ) -> dict[str, Any]:
        xsrf = client.cookies.get('XSRF-TOKEN')
        return {'headers': {'X-XSRF-TOKEN': xsrf}} if xsrf else {}


class BasicAuth:
    name = 'basic'

    def request_kwargs(
        self, client: httpx.AsyncClient, credential: Credential,
    ) -> dict[str, Any]:
        return {'auth': httpx.BasicAuth(credential.principal, credential.secret)}


DEFAULT_STRATEGIES: tuple[AuthStrategy, ...] = (SessionCookieAuth(), BasicAuth())

_AUTH_REJECTED = frozenset({401, 403})


async def send_with_strategies(
    client: httpx.AsyncClient,
    credential: Credential,
    send: Callable[..., Awaitable[httpx.Response]],
    strategies: Sequence[AuthStrategy] = DEFAULT_STRATEGIES,
) -> httpx.Response:
    """Call ``send(**kwargs)`` once per strategy until one is not rejected.

    Returns the first response whose status is not 401/403, or the last
    response if every strategy was rejected.
    """
    if not strategies:
        raise ValueError('at least one auth strategy is required')

    response: httpx.Response | None = None
    for strategy in strategies:
        response = await send(**strategy.request_kwargs(client, credential))
        if response.status_code not in _AUTH_REJECTED:
            return response
        logger.info(
            'Auth strategy %s rejected with %d, trying next',
            strategy.name, response.status_code,
        )
    assert response is not None
    return response


# ── Negotiator ─────────────────────────────────────────────────────


class AuthProbe(Protocol):
    """Non-UI check that a credential authenticates."""

    async def authenticate(self, credential: Credential) -> bool:
        ...


class PasswordRotator(Protocol):
    """State-changing password update."""

    async def change_password(self, credential: Credential, new_secret: str) -> None:
        ...


RotationDetector = Callable[[], Awaitable[bool]]


class CredentialNegotiator:
    """Resolve and, at most once per run, rotate a service credential."""

    def __init__(
        self,
        endpoint: ServiceEndpoint,
        *,
        probe: AuthProbe,
        rotator: PasswordRotator,
    ) -> None:
        self._endpoint = endpoint
        self._probe = probe
        self._rotator = rotator
        self._rotation_attempted = False
        self._rotated: Credential | None = None

    @property
    def rotated(self) -> Credential | None:
        return self._rotated

    async def resolve_working_credential(
        self, candidates: Sequence[Credential],
    ) -> Credential:
        """Return the first candidate that authenticates.

        The known default comes back in state ``default``, any other
        candidate in state ``valid``. Candidates with an empty secret are
        skipped. Transport errors are not treated as a rejection: they raise
        ``AuthProbeUnavailable``.

        Raises:
            AuthExhaustedError: If every candidate is rejected.
        """
        tried: list[str] = []
        override_configured = any(
            c.secret for c in candidates if not c.is_default
        )
        for candidate in candidates:
            if not candidate.secret:
                continue
            label = f'{candidate.principal} ({"default" if candidate.is_default else "override"})'
            tried.append(label)
            try:
                ok = await self._probe.authenticate(candidate)
            except httpx.HTTPError as exc:
                raise AuthProbeUnavailable(str(self._endpoint), str(exc)) from exc

            if ok:
                logger.info('Authenticated to %s as %s', self._endpoint.name, label)
                state = CredentialState.DEFAULT if candidate.is_default else CredentialState.VALID
                return candidate.with_state(state)
            logger.info('Credential %s rejected by %s', label, self._endpoint.name)

        raise AuthExhaustedError(
            str(self._endpoint),
            tuple(tried),
            override_configured=override_configured,
        )

    async def handle_forced_password_rotation(
        self,
        current: Credential,
        *,
        default: Credential,
        new_secret: str,
        detectors: Sequence[RotationDetector] = (),
    ) -> Credential:
        """Rotate away from the default password if the service demands it.

        Returns the credential to use from now on. The rotation call is made
        at most once per negotiator, and never for a credential that is not
        the known default.

        Raises:
            PasswordRotationTargetMissing: Rotation is required but
                ``new_secret`` is empty.
        """
        if self._rotated is not None:
            return self._rotated
        if current.secret != default.secret:
            return current

        required = False
        for detect in detectors:
            if await detect():
                required = True
                break
        if not required:
            return current

        if not new_secret:
            raise PasswordRotationTargetMissing(str(self._endpoint))
        if self._rotation_attempted:
            raise SdlcFlowError(
                f'password rotation for {self._endpoint.name} was already attempted in this run'
            )

        self._rotation_attempted = True
        logger.info(
            '%s requires a password change for %s; rotating via API',
            self._endpoint.name, current.principal,
        )
        await self._rotator.change_password(current, new_secret)
        self._rotated = Credential(
            principal=current.principal,
            secret=new_secret,
            state=CredentialState.ROTATED,
        )
        return self._rotated
