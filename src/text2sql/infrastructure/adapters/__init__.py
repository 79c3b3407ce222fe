"""
Dialect adapters and their provider registry.

The provider tag from configuration selects a constructor from a
dispatch table. MySQL and SQL Server are recognised tags without a
built-in adapter; deployments can register one with register_adapter.
"""

from typing import Callable, Dict

from ...config import DatabaseConfig
from ...config_constants import DatabaseProvider
from ...domain.errors import ConfigurationError
from .base import DatabaseAdapter
from .postgresql import PostgreSqlAdapter
from .sqlite import SqliteAdapter


AdapterFactory = Callable[[DatabaseConfig], DatabaseAdapter]

_ADAPTER_FACTORIES: Dict[DatabaseProvider, AdapterFactory] = {
    DatabaseProvider.POSTGRESQL: lambda config: PostgreSqlAdapter(config),
    DatabaseProvider.SQLITE: lambda config: SqliteAdapter(config),
}


def register_adapter(provider: DatabaseProvider, factory: AdapterFactory) -> None:
    """Register (or replace) the constructor for a provider tag."""
    _ADAPTER_FACTORIES[provider] = factory


def create_adapter(config: DatabaseConfig) -> DatabaseAdapter:
    """
    Build the adapter for ``config.provider``.

    Raises:
        ConfigurationError: If no adapter is registered for the provider
    """
    factory = _ADAPTER_FACTORIES.get(config.provider)
    if factory is None:
        raise ConfigurationError(
            f"No database adapter registered for provider '{config.provider.value}'",
            details={"supported": sorted(p.value for p in _ADAPTER_FACTORIES)},
        )
    return factory(config)


__all__ = [
    "AdapterFactory",
    "DatabaseAdapter",
    "PostgreSqlAdapter",
    "SqliteAdapter",
    "create_adapter",
    "register_adapter",
]
