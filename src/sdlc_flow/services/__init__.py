"""HTTP API clients for the services the flow talks to directly."""

from .artifacts import RawFetcher
from .base import build_client
from .gitea import GiteaApi
from .jenkins import JenkinsApi
from .sonar import SonarApi

__all__ = [
    'GiteaApi',
    'JenkinsApi',
    'RawFetcher',
    'SonarApi',
    'build_client',
]
