"""
Shared fixtures for the data lake sync tests.
"""

from datetime import datetime, UTC

import pytest

from datalake_sync.extract.repository import RepositoryRegistry
from datalake_sync.models import EntitySettings
from datalake_sync.settings import EntitySettingsProvider
from datalake_sync.tests.fakes import FakeS3


@pytest.fixture
def fixed_now():
    return datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def settings():
    return EntitySettingsProvider(
        [
            EntitySettings(name="order", initialLoadDate="2025-01-01 00:00:00"),
            EntitySettings(name="product"),
        ]
    )


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def registry_for():
    def build(repository, entity="product"):
        registry = RepositoryRegistry()
        registry.register(entity, lambda client_code: repository)
        return registry

    return build
