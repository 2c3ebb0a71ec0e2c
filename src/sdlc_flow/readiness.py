"""Readiness prober: wait until a service reports a ready status.

Connection refusal and other transport errors are expected while a service
starts up, so they count as "not ready yet" rather than failing the run.
"""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from .errors import PollTimeout, ReadinessTimeout
from .polling import poll_until
from .settings import ServiceEndpoint

logger = logging.getLogger(__name__)

ReadyPredicate = Callable[[httpx.Response], bool]

_SONAR_READY_STATUSES = frozenset({'UP', 'STARTED'})


def sonar_status_is_up(response: httpx.Response) -> bool:
    """True for ``/api/system/status`` bodies reporting UP or STARTED."""
    if response.status_code != 200:
        return False
    try:
        payload = response.json()
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get('status') in _SONAR_READY_STATUSES


def http_ok(response: httpx.Response) -> bool:
    """True for any 2xx response."""
    return response.is_success


async def wait_until_ready(
    client: httpx.AsyncClient,
    endpoint: ServiceEndpoint,
    *,
    status_path: str,
    is_ready: ReadyPredicate = http_ok,
    timeout: float = 180.0,
    interval: float = 2.0,
    request_timeout: float = 10.0,
) -> None:
    """Poll ``endpoint``'s status path until ``is_ready`` holds.

    Raises:
        ReadinessTimeout: If the service is not ready within ``timeout``.
    """
    url = endpoint.url(status_path)

    async def probe() -> bool:
        try:
            response = await client.get(url, timeout=request_timeout)
        except httpx.HTTPError as exc:
            logger.debug('%s not reachable yet: %s', endpoint.name, exc)
            return False
        return is_ready(response)

    logger.info('Waiting for %s to become ready (%s)', endpoint, status_path)
    try:
        await poll_until(
            probe,
            interval=interval,
            timeout=timeout,
            description=f'{endpoint.name} readiness',
        )
    except PollTimeout as exc:
        raise ReadinessTimeout(url, exc.elapsed) from exc
    logger.info('%s is ready', endpoint.name)
