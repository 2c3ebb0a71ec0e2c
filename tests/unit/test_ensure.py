"""Tests for the idempotent resource ensurer."""

from __future__ import annotations

import httpx
import pytest

from sdlc_flow.ensure import EnsureOutcome, ResourceDescriptor, ResourceKind, ensure
from sdlc_flow.errors import (
    ResourceCreationFailed,
    ResourceCreationVerificationFailed,
    ResourceMissing,
    SignInFailed,
)


class Resource:
    """A resource whose creation becomes visible after ``lag`` checks."""

    def __init__(self, *, present: bool = False, lag: int = 0, broken: bool = False) -> None:
        self.present = present
        self.lag = lag
        self.broken = broken
        self.creates = 0
        self.checks = 0

    async def exists(self) -> bool:
        self.checks += 1
        if self.present and self.lag > 0:
            self.lag -= 1
            return False
        return self.present

    async def create(self) -> None:
        self.creates += 1
        if not self.broken:
            self.present = True


class RestartingResource(Resource):
    """Refuses connections for ``refusals`` checks right after creation."""

    def __init__(self, *, refusals: int) -> None:
        super().__init__()
        self.refusals = refusals

    async def exists(self) -> bool:
        if self.present and self.refusals > 0:
            self.refusals -= 1
            self.checks += 1
            raise httpx.ConnectError('connection refused')
        return await super().exists()


def _descriptor(resource: Resource, **kwargs) -> ResourceDescriptor:
    return ResourceDescriptor(
        kind=ResourceKind.REPOSITORY,
        key='admin/hello-world',
        exists=resource.exists,
        create=resource.create,
        **kwargs,
    )


class TestEnsure:

    @pytest.mark.asyncio
    async def test_present_resource_is_left_alone(self):
        resource = Resource(present=True)
        outcome = await ensure(_descriptor(resource))
        assert outcome == EnsureOutcome.ALREADY_EXISTS
        assert resource.creates == 0

    @pytest.mark.asyncio
    async def test_absent_resource_is_created_and_verified(self):
        resource = Resource()
        outcome = await ensure(_descriptor(resource))
        assert outcome == EnsureOutcome.CREATED
        assert resource.creates == 1
        assert resource.checks == 2

    @pytest.mark.asyncio
    async def test_second_ensure_does_not_create_again(self):
        resource = Resource()
        await ensure(_descriptor(resource))
        outcome = await ensure(_descriptor(resource))
        assert outcome == EnsureOutcome.ALREADY_EXISTS
        assert resource.creates == 1

    @pytest.mark.asyncio
    async def test_verification_failure(self):
        resource = Resource(broken=True)
        with pytest.raises(ResourceCreationVerificationFailed) as exc_info:
            await ensure(_descriptor(resource))
        assert exc_info.value.kind == 'repository'
        assert exc_info.value.key == 'admin/hello-world'
        assert resource.creates == 1

    @pytest.mark.asyncio
    async def test_verification_waits_for_lagging_visibility(self):
        resource = Resource(lag=3)
        outcome = await ensure(_descriptor(resource, verify_timeout=1.0, verify_interval=0.01))
        assert outcome == EnsureOutcome.CREATED
        assert resource.creates == 1

    @pytest.mark.asyncio
    async def test_verification_gives_up_after_timeout(self):
        resource = Resource(broken=True)
        with pytest.raises(ResourceCreationVerificationFailed):
            await ensure(_descriptor(resource, verify_timeout=0.05, verify_interval=0.01))

    @pytest.mark.asyncio
    async def test_creation_error_is_wrapped(self):
        async def create():
            raise RuntimeError('button not found')

        descriptor = ResourceDescriptor(
            kind=ResourceKind.ISSUE,
            key='create hello-world app',
            exists=Resource().exists,
            create=create,
        )
        with pytest.raises(ResourceCreationFailed) as exc_info:
            await ensure(descriptor)
        assert 'RuntimeError: button not found' in exc_info.value.detail
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_flow_errors_from_creation_propagate_unwrapped(self):
        async def create():
            raise SignInFailed('session expired')

        descriptor = ResourceDescriptor(
            kind=ResourceKind.PROJECT,
            key='hello-world',
            exists=Resource().exists,
            create=create,
        )
        with pytest.raises(SignInFailed):
            await ensure(descriptor)

    @pytest.mark.asyncio
    async def test_missing_without_create_procedure(self):
        descriptor = ResourceDescriptor(
            kind=ResourceKind.JOB,
            key='seed-job',
            exists=Resource().exists,
        )
        with pytest.raises(ResourceMissing) as exc_info:
            await ensure(descriptor)
        assert exc_info.value.key == 'seed-job'

    @pytest.mark.asyncio
    async def test_refused_connection_during_verification_is_not_fatal(self):
        resource = RestartingResource(refusals=2)
        descriptor = ResourceDescriptor(
            kind=ResourceKind.INSTALLATION,
            key='http://gitea.test',
            exists=resource.exists,
            create=resource.create,
            verify_timeout=1.0,
            verify_interval=0.01,
        )

        outcome = await ensure(descriptor)

        assert outcome == EnsureOutcome.CREATED
        assert resource.creates == 1
        assert resource.refusals == 0

    @pytest.mark.asyncio
    async def test_service_that_never_comes_back_fails_verification(self):
        resource = RestartingResource(refusals=10_000)
        descriptor = ResourceDescriptor(
            kind=ResourceKind.INSTALLATION,
            key='http://gitea.test',
            exists=resource.exists,
            create=resource.create,
            verify_timeout=0.05,
            verify_interval=0.01,
        )

        with pytest.raises(ResourceCreationVerificationFailed):
            await ensure(descriptor)
