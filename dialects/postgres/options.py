# PostgreSQL-family dialect options, built from the raw `dialect_options`
# mapping of the configuration file or from the dialect's CLI flags.

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from core.errors import ConfigurationError
from oracles import ORACLE_REGISTRY


@dataclass(frozen=True)
class PostgresOptions:
    """Options of the postgres and yugabyte dialects."""
    oracles: List[str] = field(default_factory=lambda: ["TLP_WHERE", "NOREC"])
    test_collations: bool = False
    notification_channels: List[str] = field(default_factory=lambda: ["asdf", "test"])

    def validate(self) -> List[str]:
        errors = []
        if not self.oracles:
            errors.append("At least one oracle must be configured")
        for name in self.oracles:
            if name not in ORACLE_REGISTRY:
                errors.append(f"Unknown oracle '{name}' (available: {', '.join(sorted(ORACLE_REGISTRY))})")
        if not self.notification_channels:
            errors.append("At least one notification channel is required")
        return errors

    @classmethod
    def from_mapping(cls, raw: Optional[Dict[str, Any]] = None) -> "PostgresOptions":
        """
        Build options from a plain mapping.

        Raises:
            ConfigurationError: unknown keys or invalid values
        """
        raw = dict(raw or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ConfigurationError(f"Unknown postgres options: {', '.join(unknown)}")
        if isinstance(raw.get("oracles"), str):
            raw["oracles"] = [raw["oracles"]]
        if "oracles" in raw:
            raw["oracles"] = [name.upper() for name in raw["oracles"]]
        options = cls(**raw)
        errors = options.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))
        return options
