"""
Static registry of the bundled dialect adapters.

Dialects are looked up by their canonical lowercase name, which is also the
CLI sub-command and the name of the dialect's log directory.
"""

from typing import Dict, List, Optional, Type

from config import DatabaseConfig
from core.dialect import Dialect
from core.errors import ConfigurationError

from .postgres import PostgresDialect, YugabyteDialect

DIALECT_REGISTRY: Dict[str, Type[Dialect]] = {}


def register_dialect(dialect_class: Type[Dialect]) -> Type[Dialect]:
    """
    Add a dialect class to the registry.

    Raises:
        ConfigurationError: empty or non-lowercase name, or a name clash
    """
    name = dialect_class.name
    if not name or name != name.lower():
        raise ConfigurationError(f"Dialect name '{name}' of {dialect_class.__name__} must be lowercase")
    registered = DIALECT_REGISTRY.get(name)
    if registered is not None and registered is not dialect_class:
        raise ConfigurationError(f"Dialect '{name}' is already registered by {registered.__name__}")
    DIALECT_REGISTRY[name] = dialect_class
    return dialect_class


register_dialect(PostgresDialect)
register_dialect(YugabyteDialect)


def available_dialects() -> List[str]:
    return sorted(DIALECT_REGISTRY)


def get_dialect(name: str, database_config: Optional[DatabaseConfig] = None) -> Dialect:
    """
    Instantiate the dialect registered under ``name``.

    Raises:
        ConfigurationError: no such dialect
    """
    dialect_class = DIALECT_REGISTRY.get(name)
    if dialect_class is None:
        raise ConfigurationError(
            f"Unknown dialect '{name}' (available: {', '.join(available_dialects())})")
    return dialect_class(database_config)
