"""SonarQube web API client.

Covers the calls the flow makes without the browser: authentication
validate/login, forced-reset detection, password change and project lookup.
Login stores SonarQube's session cookies on the client so the password
change can use cookie auth and the browser can adopt them.
"""

from __future__ import annotations

import logging

import httpx

from ..auth import Credential, send_with_strategies
from ..errors import PasswordRotationError
from .base import raise_for_status

logger = logging.getLogger(__name__)

_SERVICE = 'sonarqube'

# /api/users/current flags that mean "change the password before doing anything
# else". Current servers report usingSonarQubeDefaultCredentials for admin/admin.
_RESET_FLAGS = ('usingSonarQubeDefaultCredentials', 'needsPasswordReset', 'resetPassword')


class SonarApi:
    """Async client for the SonarQube web API.

    Args:
        client: ``httpx.AsyncClient`` whose ``base_url`` is the SonarQube URL.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def validate(self, credential: Credential) -> bool:
        """``GET /api/authentication/validate`` with basic auth."""
        resp = await self._client.get(
            '/api/authentication/validate',
            auth=(credential.principal, credential.secret),
        )
        if resp.status_code != 200:
            return False
        try:
            return resp.json().get('valid') is True
        except ValueError:
            return False

    async def login(self, credential: Credential) -> bool:
        """``POST /api/authentication/login``; leaves session cookies on success."""
        resp = await self._client.post(
            '/api/authentication/login',
            data={'login': credential.principal, 'password': credential.secret},
        )
        return resp.is_success

    async def authenticate(self, credential: Credential) -> bool:
        """Validate the credential, then open a session with it."""
        if not await self.validate(credential):
            return False
        return await self.login(credential)

    async def needs_password_reset(self, credential: Credential) -> bool:
        resp = await self._client.get(
            '/api/users/current',
            auth=(credential.principal, credential.secret),
        )
        if resp.status_code != 200:
            return False
        payload = resp.json()
        return any(payload.get(flag) is True for flag in _RESET_FLAGS)

    async def change_password(self, credential: Credential, new_secret: str) -> None:
        """``POST /api/users/change_password``: session cookie first, basic auth second."""
        form = {
            'login': credential.principal,
            'previousPassword': credential.secret,
            'password': new_secret,
        }

        async def send(**kwargs) -> httpx.Response:
            return await self._client.post('/api/users/change_password', data=form, **kwargs)

        resp = await send_with_strategies(self._client, credential, send)
        if not resp.is_success:
            raise PasswordRotationError(resp.status_code, resp.text)
        logger.info('Changed SonarQube password for %s', credential.principal)

    async def project_exists(self, key: str, credential: Credential) -> bool:
        resp = await self._client.get(
            '/api/components/show',
            params={'component': key},
            auth=(credential.principal, credential.secret),
        )
        if resp.status_code == 404:
            return False
        raise_for_status(_SERVICE, resp)
        component = resp.json().get('component') or {}
        return component.get('key') == key

    def session_cookies(self) -> list[dict[str, str]]:
        """Session cookies in the shape ``BrowserContext.add_cookies`` takes."""
        url = str(self._client.base_url).rstrip('/')
        return [
            {'name': cookie.name, 'value': cookie.value or '', 'url': url}
            for cookie in self._client.cookies.jar
        ]
