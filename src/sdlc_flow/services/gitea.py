"""Gitea API client used for exact existence checks.

Creation happens through the UI; this client only reads. All lookups
compare names and titles exactly so that e.g. an issue titled
"deploy it" never matches "deploy it to nginx".
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from .base import raise_for_status

logger = logging.getLogger(__name__)

_SERVICE = 'gitea'
_PAGE_SIZE = 50
_MAX_PAGES = 20

_INSTALL_MARKERS = ('action="/install"', 'Initial Configuration')


class GiteaApi:
    """Async client for the Gitea REST API.

    Args:
        client: ``httpx.AsyncClient`` with ``base_url`` set to Gitea and
            basic auth for the admin account.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def is_installed(self) -> bool:
        """False while Gitea still serves its first-run install page."""
        resp = await self._client.get('/', auth=None)
        if '/install' in resp.url.path:
            return False
        return not any(marker in resp.text for marker in _INSTALL_MARKERS)

    async def repo_exists(self, owner: str, repo: str) -> bool:
        resp = await self._client.get(f'/api/v1/repos/{owner}/{repo}')
        if resp.status_code == 404:
            return False
        raise_for_status(_SERVICE, resp)
        return resp.json().get('name') == repo

    async def find_issue(self, owner: str, repo: str, title: str) -> dict[str, Any] | None:
        """Return the issue (open or closed) whose title equals ``title``."""
        for page in range(1, _MAX_PAGES + 1):
            resp = await self._client.get(
                f'/api/v1/repos/{owner}/{repo}/issues',
                params={'state': 'all', 'type': 'issues', 'page': page, 'limit': _PAGE_SIZE},
            )
            if resp.status_code == 404:
                return None
            raise_for_status(_SERVICE, resp)
            issues = resp.json()
            for issue in issues:
                if issue.get('title') == title:
                    return issue
            if len(issues) < _PAGE_SIZE:
                return None
        logger.warning('Stopped scanning %s/%s issues after %d pages', owner, repo, _MAX_PAGES)
        return None

    async def issue_state(self, owner: str, repo: str, title: str) -> str | None:
        issue = await self.find_issue(owner, repo, title)
        return issue.get('state') if issue else None

    async def file_exists(self, owner: str, repo: str, path: str) -> bool:
        resp = await self._client.get(
            f'/api/v1/repos/{owner}/{repo}/contents/{quote(path)}',
        )
        if resp.status_code == 404:
            return False
        raise_for_status(_SERVICE, resp)
        payload = resp.json()
        # A directory listing comes back as a JSON array.
        return isinstance(payload, dict) and payload.get('path') == path
