"""Shared httpx plumbing for the service clients."""

from __future__ import annotations

import httpx

from ..errors import ServiceAPIError
from ..settings import FlowSettings, ServiceEndpoint


def build_client(
    endpoint: ServiceEndpoint,
    settings: FlowSettings,
    *,
    auth: httpx.Auth | tuple[str, str] | None = None,
    follow_redirects: bool = True,
) -> httpx.AsyncClient:
    """Build one ``httpx.AsyncClient`` per service with shared defaults."""
    return httpx.AsyncClient(
        base_url=endpoint.base_url,
        auth=auth,
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=follow_redirects,
        headers={'Accept': 'application/json, text/html;q=0.9, */*;q=0.8'},
    )


def raise_for_status(service: str, resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return

    body = resp.text
    message = body[:200] if body else f'HTTP {resp.status_code}'
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        errors = payload.get('errors')
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            message = errors[0].get('msg', message)
        else:
            message = payload.get('message', message)

    raise ServiceAPIError(service, resp.status_code, message, response_body=body)
