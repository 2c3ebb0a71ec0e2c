"""Jenkins JSON API client for job presence and build permalinks."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from ..pipeline import JobSnapshot
from .base import raise_for_status

_SERVICE = 'jenkins'

_SNAPSHOT_TREE = (
    'lastBuild[number,building],'
    'lastSuccessfulBuild[number],'
    'lastCompletedBuild[number,result]'
)


def _job_path(job: str) -> str:
    return f'/job/{quote(job, safe="")}'


def _number(build: dict[str, Any] | None) -> int | None:
    if not build:
        return None
    number = build.get('number')
    return int(number) if number is not None else None


class JenkinsApi:
    """Read-only access to ``/job/<name>/api/json``.

    Args:
        client: ``httpx.AsyncClient`` with ``base_url`` set to Jenkins and
            basic auth for the admin account.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def job_exists(self, job: str) -> bool:
        resp = await self._client.get(
            f'{_job_path(job)}/api/json', params={'tree': 'name'},
        )
        if resp.status_code == 404:
            return False
        raise_for_status(_SERVICE, resp)
        return resp.json().get('name') == job

    async def job_snapshot(self, job: str) -> JobSnapshot | None:
        resp = await self._client.get(
            f'{_job_path(job)}/api/json', params={'tree': _SNAPSHOT_TREE},
        )
        if resp.status_code == 404:
            return None
        raise_for_status(_SERVICE, resp)
        payload = resp.json()

        last_build = payload.get('lastBuild') or {}
        last_completed = payload.get('lastCompletedBuild') or {}
        return JobSnapshot(
            last_build=_number(last_build),
            last_build_building=bool(last_build.get('building')),
            last_successful=_number(payload.get('lastSuccessfulBuild')),
            last_completed=_number(last_completed),
            last_completed_result=last_completed.get('result'),
        )
