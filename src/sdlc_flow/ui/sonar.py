"""SonarQube UI intents: sign-in, forced-reset detection, project creation."""

from __future__ import annotations

import logging
import re

from playwright.async_api import Page

from ..auth import Credential
from ..errors import SignInFailed
from .browser import BrowserSession, is_visible

logger = logging.getLogger(__name__)

_RESET_URL = re.compile(r'/account/reset_password')
_LOGIN_HEADING = re.compile(r'log in to sonarqube', re.I)


class SonarUi:
    def __init__(self, session: BrowserSession, base_url: str) -> None:
        self._session = session
        self._base_url = base_url.rstrip('/')

    @property
    def _page(self) -> Page:
        return self._session.page

    async def _login_form_visible(self) -> bool:
        page = self._page
        if await is_visible(page.get_by_role('heading', name=_LOGIN_HEADING)):
            return True
        login = page.get_by_role('textbox', name=re.compile(r'^login$', re.I))
        password = page.get_by_role('textbox', name=re.compile(r'^password$', re.I))
        return await is_visible(login) and await is_visible(password)

    async def ensure_signed_in(self, credential: Credential, *, attempts: int = 2) -> None:
        """Open the account page, submitting the login form if it is shown.

        The browser normally arrives already authenticated with cookies
        adopted from the API session; the form is the fallback.

        Raises:
            SignInFailed: The login form is still shown after ``attempts``.
        """
        page = self._page
        security_url = f'{self._base_url}/account/security'
        await self._session.goto(security_url)

        for attempt in range(1, attempts + 1):
            if not await self._login_form_visible():
                break
            logger.info('SonarQube UI login (attempt %d/%d)', attempt, attempts)
            await page.get_by_role('textbox', name=re.compile(r'^login$', re.I)).fill(credential.principal)
            await page.get_by_role('textbox', name=re.compile(r'^password$', re.I)).fill(credential.secret)
            await page.get_by_role('button', name=re.compile(r'^log in$', re.I)).click()
            await page.wait_for_load_state('networkidle')
            await self._session.settle()
            if not await self._login_form_visible():
                break
            await self._session.goto(security_url)

        # Some versions bounce back to login after the first navigation.
        await self._session.goto(security_url)
        if await self._login_form_visible():
            raise SignInFailed(
                'SonarQube login still required on /account/security; '
                'check SONAR_NEW_PASS'
            )

    async def rotation_prompt_visible(self) -> bool:
        """True when the UI is demanding a password change."""
        page = self._page
        if _RESET_URL.search(page.url):
            return True
        candidates = (
            page.get_by_role('heading', name=re.compile(r'update your password', re.I)),
            page.get_by_text(re.compile(r'enter a new password', re.I)).first,
            page.get_by_role('textbox', name=re.compile(r'old password', re.I)).first,
        )
        for locator in candidates:
            if await is_visible(locator):
                return True
        return False

    async def create_project(self, *, name: str, key: str, main_branch: str) -> None:
        page = self._page
        await self._session.goto(f'{self._base_url}/projects/create?mode=manual')

        display_name = page.get_by_role('textbox', name=re.compile(r'project display name', re.I)).first
        await display_name.wait_for(state='visible', timeout=60_000)
        await display_name.fill(name)
        await page.get_by_role('textbox', name=re.compile(r'project key', re.I)).first.fill(key)
        branch = page.get_by_role('textbox', name=re.compile(r'main branch name', re.I)).first
        if await is_visible(branch):
            await branch.fill(main_branch)

        await page.get_by_role('button', name=re.compile(r'set up', re.I)).first.click()
        await page.wait_for_load_state('networkidle')
        await self._session.settle()
