"""
Pytest fixtures for shared module tests.
"""

import pytest
from unittest.mock import AsyncMock


@pytest.fixture
def mock_redis_client():
    """Create a mock Redis client."""
    client = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    return client
