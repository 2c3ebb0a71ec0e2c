"""Direct, unauthenticated content fetches.

Used for byte-level checks of published artifacts: the request bypasses the
browser, so neither rendering nor the browser cache can hide a stale or
missing file.
"""

from __future__ import annotations

import logging

import httpx

from ..pipeline import ContentTarget

logger = logging.getLogger(__name__)


class RawFetcher:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch(self, target: ContentTarget) -> str | None:
        try:
            resp = await self._client.get(
                target.url, headers={'Cache-Control': 'no-cache'}, auth=None,
            )
        except httpx.HTTPError as exc:
            logger.debug('%s not reachable: %s', target.url, exc)
            return None
        if resp.status_code != 200:
            logger.debug('%s returned %d', target.url, resp.status_code)
            return None
        return resp.text
