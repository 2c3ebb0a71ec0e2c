"""Idempotent resource ensurer.

Every resource the flow provisions (installation, project, repository,
issue, file, job) is described by a :class:`ResourceDescriptor`: an
existence predicate plus an optional creation procedure. :func:`ensure`
checks existence immediately before creating, never creates twice, and
independently re-checks existence after creating.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

import httpx

from .errors import (
    PollTimeout,
    ResourceCreationFailed,
    ResourceCreationVerificationFailed,
    ResourceMissing,
    SdlcFlowError,
)
from .polling import poll_until

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    INSTALLATION = 'installation'
    PROJECT = 'project'
    REPOSITORY = 'repository'
    ISSUE = 'issue'
    FILE = 'file'
    JOB = 'job'


class EnsureOutcome(str, Enum):
    CREATED = 'created'
    ALREADY_EXISTS = 'already_exists'


@dataclass(frozen=True, slots=True)
class ResourceDescriptor:
    """One resource and how to detect and create it.

    Attributes:
        kind: Resource category, used in logs and errors.
        key: Exact identifier (name, title, key, URL).
        exists: Async predicate; must match ``key`` exactly.
        create: Async creation procedure, or None when the resource must be
            provisioned outside this flow.
        verify_timeout: How long to keep re-checking ``exists`` after
            creation before declaring verification failed. Zero means a
            single check.
        verify_interval: Seconds between post-creation checks.
    """

    kind: ResourceKind
    key: str
    exists: Callable[[], Awaitable[bool]]
    create: Callable[[], Awaitable[None]] | None = None
    verify_timeout: float = 0.0
    verify_interval: float = 1.0


async def ensure(descriptor: ResourceDescriptor) -> EnsureOutcome:
    """Make sure the described resource exists.

    Raises:
        ResourceMissing: Absent and no creation procedure is available.
        ResourceCreationFailed: The creation procedure raised.
        ResourceCreationVerificationFailed: Creation returned normally but
            the resource is still absent.
    """
    kind = descriptor.kind.value
    key = descriptor.key

    if await descriptor.exists():
        logger.info('%s %r already exists, skipping creation', kind, key)
        return EnsureOutcome.ALREADY_EXISTS

    if descriptor.create is None:
        raise ResourceMissing(kind, key)

    logger.info('Creating %s %r', kind, key)
    try:
        await descriptor.create()
    except SdlcFlowError:
        raise
    except Exception as exc:
        raise ResourceCreationFailed(kind, key, f'{type(exc).__name__}: {exc}') from exc

    if not await _verify(descriptor):
        raise ResourceCreationVerificationFailed(kind, key)

    logger.info('Created %s %r', kind, key)
    return EnsureOutcome.CREATED


async def _verify(descriptor: ResourceDescriptor) -> bool:
    async def visible() -> bool:
        # The service may restart right after creation (Gitea does after install).
        try:
            return await descriptor.exists()
        except httpx.HTTPError as exc:
            logger.debug('%s %r not reachable yet: %s', descriptor.kind.value, descriptor.key, exc)
            return False

    if descriptor.verify_timeout <= 0:
        return await visible()
    try:
        await poll_until(
            visible,
            interval=descriptor.verify_interval,
            timeout=descriptor.verify_timeout,
            description=f'{descriptor.kind.value} {descriptor.key} visible',
        )
    except PollTimeout:
        return False
    return True
