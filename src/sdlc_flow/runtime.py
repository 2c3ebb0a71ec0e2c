"""Assemble a live flow: HTTP clients, the browser session and UI intents.

Usage::

    async with open_flow(FlowSettings.from_env()) as runtime:
        result = await runtime.flow.run()
"""

from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from .orchestrator import FlowServices, FlowUi, SdlcFlow
from .services import GiteaApi, JenkinsApi, RawFetcher, SonarApi, build_client
from .settings import FlowSettings
from .ui import BrowserSession, GiteaUi, JenkinsCi, JenkinsUi, SonarUi


@dataclass(frozen=True, slots=True)
class FlowRuntime:
    flow: SdlcFlow
    browser: BrowserSession


@asynccontextmanager
async def open_flow(settings: FlowSettings) -> AsyncIterator[FlowRuntime]:
    """Open every client the flow needs and close them on exit."""
    s = settings
    async with AsyncExitStack() as stack:
        sonar_http = await stack.enter_async_context(build_client(s.sonar, s))
        gitea_http = await stack.enter_async_context(
            build_client(s.gitea, s, auth=(s.gitea_admin_user, s.gitea_admin_pass)),
        )
        jenkins_http = await stack.enter_async_context(
            build_client(s.jenkins, s, auth=(s.jenkins_admin_user, s.jenkins_admin_pass)),
        )
        nexus_http = await stack.enter_async_context(build_client(s.nexus, s))

        browser = await stack.enter_async_context(
            BrowserSession.launch(headless=not s.headed, settle_seconds=s.settle_seconds),
        )

        jenkins_ui = JenkinsUi(browser, s.jenkins_url)
        services = FlowServices(
            sonar_http=sonar_http,
            gitea_http=gitea_http,
            sonar=SonarApi(sonar_http),
            gitea=GiteaApi(gitea_http),
            ci=JenkinsCi(JenkinsApi(jenkins_http), jenkins_ui),
            raw=RawFetcher(nexus_http),
        )
        ui = FlowUi(
            browser=browser,
            sonar=SonarUi(browser, s.sonar_url),
            gitea=GiteaUi(browser, s.gitea_url),
            jenkins=jenkins_ui,
        )
        yield FlowRuntime(flow=SdlcFlow(s, services, ui), browser=browser)
