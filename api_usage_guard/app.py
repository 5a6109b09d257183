"""
Application wiring.

Builds stores and services once from an ``AppConfig`` and hands the same
instances to everything that needs them.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from api_usage_guard.api.handlers import RequestHandler
from api_usage_guard.config.loader import AppConfig, StorageBackend
from api_usage_guard.core.alerts import AlertEngine, AlertNotifier
from api_usage_guard.core.auth import AuthService
from api_usage_guard.core.credentials import CredentialStore
from api_usage_guard.core.ledger import UsageLedger
from api_usage_guard.core.registry import IntegrationRegistry
from api_usage_guard.core.tokens import TokenService
from api_usage_guard.storage.base import Stores
from api_usage_guard.storage.memory import create_memory_stores
from api_usage_guard.storage.repository import create_sqlite_stores

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """A fully wired application instance."""
    config: AppConfig
    stores: Stores
    alert_engine: AlertEngine
    ledger: UsageLedger
    registry: IntegrationRegistry
    credentials: CredentialStore
    tokens: TokenService
    auth: AuthService
    handler: RequestHandler


def create_stores(config: AppConfig) -> Stores:
    if config.storage.backend == StorageBackend.SQLITE:
        logger.info("Using sqlite storage at %s", config.storage.db_path)
        return create_sqlite_stores(config.storage.db_path)
    logger.info("Using in-memory storage")
    return create_memory_stores()


def build_application(
    config: Optional[AppConfig] = None,
    stores: Optional[Stores] = None,
    notifier: Optional[AlertNotifier] = None,
) -> Application:
    """Construct every service for ``config``.

    Args:
        config: Application configuration, defaults to ``AppConfig()``
        stores: Pre-built stores, overriding the configured backend
        notifier: Receiver for triggered alerts, defaults to logging

    Returns:
        Application holding the shared service instances
    """
    config = config or AppConfig()
    stores = stores or create_stores(config)

    alert_engine = AlertEngine(stores.alerts, stores.integrations, stores.usage, notifier)
    ledger = UsageLedger(stores.usage, stores.integrations, alert_engine)
    registry = IntegrationRegistry(stores.integrations, ledger, alert_engine)
    credentials = CredentialStore(stores.users, config.auth.bcrypt_rounds)
    tokens = TokenService(
        access_secret=config.auth.access_secret,
        refresh_secret=config.auth.refresh_secret,
        access_ttl=timedelta(minutes=config.auth.access_ttl_minutes),
        refresh_ttl=timedelta(days=config.auth.refresh_ttl_days),
    )
    auth = AuthService(credentials, tokens)
    handler = RequestHandler(
        registry=registry,
        ledger=ledger,
        alert_engine=alert_engine,
        credentials=credentials,
        auth=auth,
        tokens=tokens,
        tenancy=config.tenancy,
    )

    return Application(
        config=config,
        stores=stores,
        alert_engine=alert_engine,
        ledger=ledger,
        registry=registry,
        credentials=credentials,
        tokens=tokens,
        auth=auth,
        handler=handler,
    )
