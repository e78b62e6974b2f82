"""Integration test fixtures and utilities."""

from collections.abc import Iterator
from unittest.mock import AsyncMock, patch

import pytest

from tests.conftest import FakeComputeClient


@pytest.fixture
def compute_backend(
    monkeypatch: pytest.MonkeyPatch, mock_auth_manager: AsyncMock
) -> Iterator[FakeComputeClient]:
    """Wire the real service stack to an in-memory Compute Engine.

    Services resolve their project through the auth manager and their region
    through GCELB_GCLOUD_REGION, and build their client with discovery.build(),
    exactly as they do outside tests.
    """
    monkeypatch.setenv("GCELB_GCLOUD_REGION", "us-central1")
    backend = FakeComputeClient(project=mock_auth_manager.project_id, pending_polls=1)

    with (
        patch("gcelb.services.base.get_auth_manager", return_value=mock_auth_manager),
        patch("gcelb.services.base.discovery.build", return_value=backend) as mock_build,
    ):
        yield backend

    for call in mock_build.call_args_list:
        assert call.args == ("compute", "v1")
        assert call.kwargs["cache_discovery"] is False
