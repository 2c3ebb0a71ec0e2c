"""Gitea UI intents: first-run setup, sign-in, repository/issue/file creation
and closing an issue."""

from __future__ import annotations

import logging
import re

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..errors import SignInFailed
from ..settings import TrackedFile
from .browser import BrowserSession, is_visible

logger = logging.getLogger(__name__)

_USER_MENU = '.ui.dropdown.jump.item, .user-dropdown, [aria-label="Profile and settings"]'


class GiteaUi:
    def __init__(self, session: BrowserSession, base_url: str) -> None:
        self._session = session
        self._base_url = base_url.rstrip('/')

    @property
    def _page(self) -> Page:
        return self._session.page

    def _url(self, path: str) -> str:
        return f'{self._base_url}/{path.lstrip("/")}'

    async def complete_first_run_setup(
        self,
        *,
        site_title: str,
        admin_user: str,
        admin_pass: str,
        admin_email: str,
        timeout: float = 120.0,
    ) -> None:
        """Fill the install form, creating the admin account, and submit it."""
        page = self._page
        await self._session.goto(self._url('/'))
        await self._session.settle(2.0)

        site_title_field = page.get_by_role('textbox', name=re.compile(r'site title', re.I))
        await site_title_field.clear()
        await site_title_field.fill(site_title)

        # The admin section is collapsed at the bottom of the form.
        await page.evaluate('() => window.scrollTo(0, document.body.scrollHeight)')
        await self._session.settle()
        await page.get_by_text('Administrator Account Settings').click()
        await self._session.settle()

        await page.get_by_role('textbox', name=re.compile(r'administrator username', re.I)).fill(admin_user)
        await page.get_by_role('textbox', name=re.compile(r'^password$', re.I)).fill(admin_pass)
        await page.get_by_role('textbox', name=re.compile(r'confirm password', re.I)).fill(admin_pass)
        await page.get_by_role('textbox', name=re.compile(r'email address', re.I)).fill(admin_email)

        await page.evaluate('() => window.scrollTo(0, document.body.scrollHeight)')
        await self._session.settle(0.5)
        await page.get_by_role('button', name='Install Gitea').click()

        await page.wait_for_url(lambda url: '/install' not in url, timeout=timeout * 1000)
        await page.wait_for_load_state('networkidle')

    async def sign_in(self, user: str, password: str) -> None:
        """Sign in unless the session already is.

        Raises:
            SignInFailed: The login form rejected the credentials.
        """
        page = self._page
        await self._session.goto(self._url('/'))
        if await is_visible(page.locator(_USER_MENU).first):
            return

        await self._session.goto(self._url('/user/login'))
        if '/user/login' not in page.url:
            return

        form = page.locator('form[action="/user/login"]')
        await form.wait_for(state='visible', timeout=60_000)
        await form.locator('input[name="user_name"], input#user_name, input[type="text"]').first.fill(user)
        await form.locator('input[name="password"], input#password, input[type="password"]').first.fill(password)
        await form.get_by_role('button', name=re.compile(r'sign in|login', re.I)).click()
        try:
            await page.wait_for_url(lambda url: '/user/login' not in url, timeout=30_000)
        except PlaywrightTimeoutError as exc:
            raise SignInFailed(f'Gitea login as {user!r} did not complete: {exc}') from exc
        logger.info('Signed in to Gitea as %s', user)

    async def create_repository(self, name: str, *, default_branch: str) -> None:
        page = self._page
        await self._session.goto(self._url('/repo/create'))
        await page.get_by_label(re.compile(r'repository name', re.I)).fill(name)
        branch = page.get_by_label(re.compile(r'default branch', re.I))
        if await is_visible(branch):
            await branch.fill(default_branch)
        await page.get_by_role('button', name=re.compile(r'create repository', re.I)).click()
        await page.wait_for_url(lambda url: f'/{name}' in url, timeout=30_000)

    async def create_issue(self, owner: str, repo: str, title: str) -> None:
        page = self._page
        await self._session.goto(self._url(f'/{owner}/{repo}/issues/new'))
        await self._session.settle()
        await page.get_by_role('textbox', name=re.compile(r'title', re.I)).first.fill(title)
        await page.get_by_role('button', name=re.compile(r'create issue', re.I)).click()
        await self._session.settle(2.0)

    async def create_file(self, owner: str, repo: str, file: TrackedFile, *, branch: str) -> None:
        """Create and commit ``file`` through the web editor.

        The editor is driven with the keyboard: the filename input has focus
        on load, and two tabs (past the Cancel link) reach the editor body.
        """
        page = self._page
        await self._session.goto(self._url(f'/{owner}/{repo}/_new/{branch}/'))
        await self._session.settle(2.0)

        filename = page.locator('input#file-name, input[name="tree_path"]').first
        if await is_visible(filename):
            await filename.click()
        await page.keyboard.type(file.name)
        await page.keyboard.press('Tab')
        await page.keyboard.press('Tab')
        await self._session.settle(0.5)
        await page.keyboard.type(file.content)

        await page.evaluate('() => window.scrollTo(0, document.body.scrollHeight)')
        await self._session.settle(0.5)
        await page.get_by_role('button', name=re.compile(r'commit changes', re.I)).click()
        await self._session.settle(3.0)

    async def close_issue(self, owner: str, repo: str, number: int) -> None:
        page = self._page
        await self._session.goto(self._url(f'/{owner}/{repo}/issues/{number}'))
        await page.get_by_role('button', name=re.compile(r'close issue', re.I)).click()
        await page.wait_for_load_state('networkidle')
