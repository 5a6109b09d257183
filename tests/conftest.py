"""
Shared fixtures.

Store-backed tests run once against the in-memory stores and once against
SQLite stores in a temporary directory.
"""

import os
import shutil
import tempfile

import pytest

from api_usage_guard.app import build_application
from api_usage_guard.config.loader import AppConfig, AuthConfig, TenancyMode
from api_usage_guard.storage.memory import create_memory_stores
from api_usage_guard.storage.repository import create_sqlite_stores

TEST_ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
TEST_REFRESH_SECRET = "test-refresh-secret-0123456789abcdef0123456789"


def make_config(tenancy: TenancyMode = TenancyMode.SINGLE) -> AppConfig:
    """Config with test secrets and the cheapest bcrypt work factor."""
    return AppConfig(
        auth=AuthConfig(
            access_secret=TEST_ACCESS_SECRET,
            refresh_secret=TEST_REFRESH_SECRET,
            bcrypt_rounds=4,
        ),
        tenancy=tenancy,
    )


@pytest.fixture
def temp_dir():
    """Temporary directory removed after the test."""
    path = tempfile.mkdtemp()
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture(params=["memory", "sqlite"])
def stores(request, temp_dir):
    """Fresh stores for each backend."""
    if request.param == "sqlite":
        return create_sqlite_stores(os.path.join(temp_dir, "test.db"))
    return create_memory_stores()


@pytest.fixture
def application(stores):
    """Single-tenant application wired to the parametrized stores."""
    return build_application(make_config(), stores=stores)


@pytest.fixture
def integration(application):
    """An integration registered under the anonymous owner."""
    return application.registry.create("anonymous", "OpenAI prod", "openai", "sk-test")


@pytest.fixture
def multi_tenant_application():
    """Multi-tenant application on in-memory stores."""
    return build_application(make_config(TenancyMode.MULTI), stores=create_memory_stores())
