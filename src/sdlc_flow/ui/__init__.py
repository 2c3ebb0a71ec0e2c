"""Playwright implementations of the flow's named UI intents."""

from .browser import BrowserSession, is_visible
from .gitea import GiteaUi
from .jenkins import JenkinsCi, JenkinsUi
from .sonar import SonarUi

__all__ = [
    'BrowserSession',
    'GiteaUi',
    'JenkinsCi',
    'JenkinsUi',
    'SonarUi',
    'is_visible',
]
