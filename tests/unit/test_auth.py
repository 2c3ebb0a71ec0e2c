"""Tests for credential negotiation, forced rotation and auth strategies."""

from __future__ import annotations

import httpx
import pytest

from sdlc_flow.auth import (
    BasicAuth,
    Credential,
    CredentialNegotiator,
    CredentialState,
    SessionCookieAuth,
    send_with_strategies,
)
from sdlc_flow.errors import (
    AuthExhaustedError,
    AuthProbeUnavailable,
    PasswordRotationTargetMissing,
    SdlcFlowError,
)
from sdlc_flow.settings import ServiceEndpoint

SONAR = ServiceEndpoint('sonarqube', 'http://sonar.test')
DEFAULT = Credential('admin', 'admin', is_default=True)
OVERRIDE = Credential('admin', 'n3w-pass')


class FakeProbe:
    def __init__(self, accepts: set[str], *, unreachable: bool = False) -> None:
        self.accepts = accepts
        self.unreachable = unreachable
        self.tried: list[str] = []

    async def authenticate(self, credential: Credential) -> bool:
        self.tried.append(credential.secret)
        if self.unreachable:
            raise httpx.ConnectError('connection refused')
        return credential.secret in self.accepts


class FakeRotator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def change_password(self, credential: Credential, new_secret: str) -> None:
        self.calls.append((credential.secret, new_secret))


def _negotiator(probe=None, rotator=None) -> CredentialNegotiator:
    return CredentialNegotiator(
        SONAR,
        probe=probe or FakeProbe({'admin'}),
        rotator=rotator or FakeRotator(),
    )


async def _fires() -> bool:
    return True


async def _quiet() -> bool:
    return False


class TestResolveWorkingCredential:

    @pytest.mark.asyncio
    async def test_default_accepted(self):
        negotiator = _negotiator(FakeProbe({'admin'}))
        credential = await negotiator.resolve_working_credential([DEFAULT, OVERRIDE])
        assert credential.secret == 'admin'
        assert credential.state == CredentialState.DEFAULT
        assert credential.is_default is True

    @pytest.mark.asyncio
    async def test_falls_back_to_override(self):
        probe = FakeProbe({'n3w-pass'})
        negotiator = _negotiator(probe)
        credential = await negotiator.resolve_working_credential([DEFAULT, OVERRIDE])
        assert credential.secret == 'n3w-pass'
        assert probe.tried == ['admin', 'n3w-pass']

    @pytest.mark.asyncio
    async def test_empty_secrets_skipped(self):
        probe = FakeProbe({'admin'})
        negotiator = _negotiator(probe)
        await negotiator.resolve_working_credential([Credential('admin', ''), DEFAULT])
        assert probe.tried == ['admin']

    @pytest.mark.asyncio
    async def test_exhausted_names_principals(self):
        negotiator = _negotiator(FakeProbe(set()))
        with pytest.raises(AuthExhaustedError) as exc_info:
            await negotiator.resolve_working_credential([DEFAULT, OVERRIDE])
        assert len(exc_info.value.principals) == 2
        assert exc_info.value.override_configured is True

    @pytest.mark.asyncio
    async def test_exhausted_without_override_says_so(self):
        negotiator = _negotiator(FakeProbe(set()))
        with pytest.raises(AuthExhaustedError) as exc_info:
            await negotiator.resolve_working_credential([DEFAULT, Credential('admin', '')])
        assert exc_info.value.override_configured is False
        assert 'no override password' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_does_not_fall_through(self):
        probe = FakeProbe({'n3w-pass'}, unreachable=True)
        negotiator = _negotiator(probe)
        with pytest.raises(AuthProbeUnavailable):
            await negotiator.resolve_working_credential([DEFAULT, OVERRIDE])
        assert probe.tried == ['admin']


class TestForcedRotation:

    @pytest.mark.asyncio
    async def test_rotates_default_when_detector_fires(self):
        rotator = FakeRotator()
        negotiator = _negotiator(rotator=rotator)
        current = DEFAULT.with_state(CredentialState.DEFAULT)

        rotated = await negotiator.handle_forced_password_rotation(
            current, default=DEFAULT, new_secret='n3w-pass', detectors=(_fires,),
        )

        assert rotated.secret == 'n3w-pass'
        assert rotated.state == CredentialState.ROTATED
        assert rotator.calls == [('admin', 'n3w-pass')]
        assert negotiator.rotated == rotated

    @pytest.mark.asyncio
    async def test_no_rotation_when_not_demanded(self):
        rotator = FakeRotator()
        negotiator = _negotiator(rotator=rotator)

        result = await negotiator.handle_forced_password_rotation(
            DEFAULT, default=DEFAULT, new_secret='n3w-pass', detectors=(_quiet,),
        )

        assert result is DEFAULT
        assert rotator.calls == []

    @pytest.mark.asyncio
    async def test_never_rotates_a_non_default_credential(self):
        rotator = FakeRotator()
        negotiator = _negotiator(rotator=rotator)

        result = await negotiator.handle_forced_password_rotation(
            OVERRIDE, default=DEFAULT, new_secret='other', detectors=(_fires,),
        )

        assert result is OVERRIDE
        assert rotator.calls == []

    @pytest.mark.asyncio
    async def test_at_most_once_per_run(self):
        rotator = FakeRotator()
        negotiator = _negotiator(rotator=rotator)

        first = await negotiator.handle_forced_password_rotation(
            DEFAULT, default=DEFAULT, new_secret='n3w-pass', detectors=(_fires,),
        )
        second = await negotiator.handle_forced_password_rotation(
            DEFAULT, default=DEFAULT, new_secret='n3w-pass', detectors=(_fires,),
        )

        assert second is first
        assert len(rotator.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_target_fails_before_rotating(self):
        rotator = FakeRotator()
        negotiator = _negotiator(rotator=rotator)

        with pytest.raises(PasswordRotationTargetMissing) as exc_info:
            await negotiator.handle_forced_password_rotation(
                DEFAULT, default=DEFAULT, new_secret='', detectors=(_fires,),
            )

        assert exc_info.value.setting == 'SONAR_NEW_PASS'
        assert rotator.calls == []

    @pytest.mark.asyncio
    async def test_failed_rotation_is_not_retried(self):
        class ExplodingRotator:
            calls = 0

            async def change_password(self, credential, new_secret):
                ExplodingRotator.calls += 1
                raise SdlcFlowError('rejected')

        negotiator = _negotiator(rotator=ExplodingRotator())
        with pytest.raises(SdlcFlowError, match='rejected'):
            await negotiator.handle_forced_password_rotation(
                DEFAULT, default=DEFAULT, new_secret='n3w-pass', detectors=(_fires,),
            )
        with pytest.raises(SdlcFlowError, match='already attempted'):
            await negotiator.handle_forced_password_rotation(
                DEFAULT, default=DEFAULT, new_secret='n3w-pass', detectors=(_fires,),
            )
        assert ExplodingRotator.calls == 1

    @pytest.mark.asyncio
    async def test_detectors_evaluated_in_order_until_one_fires(self):
        order = []

        async def api_flag():
            order.append('api')
            return True

        async def ui_prompt():
            order.append('ui')
            return True

        negotiator = _negotiator()
        await negotiator.handle_forced_password_rotation(
            DEFAULT, default=DEFAULT, new_secret='n3w-pass', detectors=(api_flag, ui_prompt),
        )
        assert order == ['api']


class TestSendWithStrategies:

    @pytest.mark.asyncio
    async def test_cookie_strategy_sends_xsrf_header(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get('X-XSRF-TOKEN'))
            return httpx.Response(204)

        client = httpx.AsyncClient(
            base_url='http://sonar.test', transport=httpx.MockTransport(handler),
        )
        client.cookies.set('XSRF-TOKEN', 'tok123')

        async def send(**kwargs):
            return await client.post('/api/users/change_password', **kwargs)

        resp = await send_with_strategies(client, DEFAULT, send)
        assert resp.status_code == 204
        assert seen == ['tok123']

    @pytest.mark.asyncio
    async def test_falls_back_to_basic_on_401(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            authorization = request.headers.get('Authorization')
            seen.append(authorization)
            return httpx.Response(204 if authorization else 401)

        client = httpx.AsyncClient(
            base_url='http://sonar.test', transport=httpx.MockTransport(handler),
        )

        async def send(**kwargs):
            return await client.post('/api/users/change_password', **kwargs)

        resp = await send_with_strategies(client, DEFAULT, send)
        assert resp.status_code == 204
        assert seen[0] is None
        assert seen[1].startswith('Basic ')

    @pytest.mark.asyncio
    async def test_does_not_fall_back_on_other_errors(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(400, json={'errors': [{'msg': 'weak password'}]})

        client = httpx.AsyncClient(
            base_url='http://sonar.test', transport=httpx.MockTransport(handler),
        )

        async def send(**kwargs):
            return await client.post('/api/users/change_password', **kwargs)

        resp = await send_with_strategies(client, DEFAULT, send)
        assert resp.status_code == 400
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_returns_last_rejection(self):
        client = httpx.AsyncClient(
            base_url='http://sonar.test',
            transport=httpx.MockTransport(lambda request: httpx.Response(403)),
        )

        async def send(**kwargs):
            return await client.post('/x', **kwargs)

        resp = await send_with_strategies(client, DEFAULT, send, (SessionCookieAuth(), BasicAuth()))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_requires_a_strategy(self):
        client = httpx.AsyncClient(base_url='http://sonar.test')

        async def send(**kwargs):
            raise AssertionError('not called')

        with pytest.raises(ValueError):
            await send_with_strategies(client, DEFAULT, send, ())

    def test_credential_repr_hides_secret(self):
        assert 'n3w-pass' not in repr(OVERRIDE)
