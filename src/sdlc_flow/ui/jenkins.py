"""Jenkins UI intents and the CI server adapter built on them.

Builds are triggered through the UI because Jenkins guards ``/build`` with
a CSRF crumb; the status surface is read through the JSON API.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

from playwright.async_api import Page

from ..errors import BuildTriggerFailed, SignInFailed
from ..pipeline import JobSnapshot
from ..services.jenkins import JenkinsApi
from .browser import BrowserSession, is_visible

logger = logging.getLogger(__name__)


class JenkinsUi:
    def __init__(self, session: BrowserSession, base_url: str) -> None:
        self._session = session
        self._base_url = base_url.rstrip('/')

    @property
    def _page(self) -> Page:
        return self._session.page

    async def sign_in(self, user: str, password: str) -> None:
        page = self._page
        await self._session.goto(f'{self._base_url}/login')
        await self._session.settle(2.0)

        await page.locator('input[name="j_username"]').fill(user)
        await page.locator('input[name="j_password"]').fill(password)
        await page.locator('button[name="Submit"], input[name="Submit"]').first.click()
        await self._session.settle(3.0)

        if 'loginError' in page.url or page.url.rstrip('/').endswith('/login'):
            raise SignInFailed(f'Jenkins login as {user!r} was rejected')
        logger.info('Signed in to Jenkins as %s', user)

    def build_url(self, job: str) -> str:
        return f'{self._base_url}/job/{quote(job, safe="")}/build?delay=0sec'

    async def trigger_build(self, job: str) -> bool:
        """Open the job's build URL and acknowledge whatever it asks.

        Jenkins answers a GET on ``/build`` with a POST-confirmation page
        ("Proceed") for plain jobs and with a parameters form ("Build") for
        parameterised ones. Without acknowledging, nothing is scheduled.

        Returns:
            False if the page offered nothing to acknowledge.
        """
        await self._session.goto(self.build_url(job))
        await self._session.settle()
        return await self.acknowledge_build_confirmation()

    async def acknowledge_build_confirmation(self) -> bool:
        page = self._page
        acknowledged = False

        proceed = page.get_by_role('button', name=re.compile(r'proceed', re.I))
        if await is_visible(proceed):
            await proceed.click()
            await self._session.settle(3.0)
            acknowledged = True

        build = page.get_by_role('button', name=re.compile(r'^build$', re.I))
        if await is_visible(build):
            await build.click()
            await self._session.settle(3.0)
            acknowledged = True

        if not acknowledged:
            logger.warning('No build confirmation shown at %s', page.url)
        return acknowledged


class JenkinsCi:
    """``CiServer`` backed by the Jenkins JSON API and UI."""

    def __init__(self, api: JenkinsApi, ui: JenkinsUi) -> None:
        self._api = api
        self._ui = ui

    async def job_exists(self, job: str) -> bool:
        return await self._api.job_exists(job)

    async def job_snapshot(self, job: str) -> JobSnapshot | None:
        return await self._api.job_snapshot(job)

    async def trigger(self, job: str) -> None:
        if not await self._ui.trigger_build(job):
            raise BuildTriggerFailed(job, self._ui.build_url(job))
