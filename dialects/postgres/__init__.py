"""
PostgreSQL-family dialects (PostgreSQL and YugabyteDB).
"""

from .options import PostgresOptions
from .provider import PostgresDialect, YugabyteDialect

__all__ = [
    'PostgresDialect',
    'PostgresOptions',
    'YugabyteDialect',
]
