# In-memory snapshot of the public schema of one fuzzing database. Rebuilt
# from information_schema whenever a schema-affecting statement succeeded.

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional

from core.errors import SkipAttempt
from dialects.postgres.common import PostgresDataType

if TYPE_CHECKING:
    from core.randomly import Randomly

logger = logging.getLogger(__name__)

TABLES_QUERY = """
    SELECT table_name, table_type, is_insertable_into
    FROM information_schema.tables
    WHERE table_schema = 'public'
    AND table_type IN ('BASE TABLE', 'VIEW')
    ORDER BY table_name
"""

COLUMNS_QUERY = """
    SELECT c.table_name, c.column_name, c.data_type, c.is_nullable
    FROM information_schema.columns c
    INNER JOIN information_schema.tables t
        ON c.table_name = t.table_name AND c.table_schema = t.table_schema
    WHERE t.table_schema = 'public'
    AND t.table_type IN ('BASE TABLE', 'VIEW')
    ORDER BY c.table_name, c.ordinal_position
"""

INDEXES_QUERY = "SELECT indexname FROM pg_indexes WHERE schemaname = 'public' ORDER BY indexname"

STATISTICS_QUERY = """
    SELECT s.stxname
    FROM pg_statistic_ext s
    JOIN pg_namespace n ON n.oid = s.stxnamespace
    WHERE n.nspname = 'public'
    ORDER BY s.stxname
"""


@dataclass
class PostgresColumn:
    name: str
    table_name: str
    data_type: Optional[PostgresDataType]
    nullable: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.table_name}.{self.name}"


@dataclass
class PostgresTable:
    name: str
    columns: List[PostgresColumn] = field(default_factory=list)
    is_view: bool = False
    is_insertable: bool = True

    def random_non_empty_columns(self, randomly: "Randomly") -> List[PostgresColumn]:
        if not self.columns:
            raise SkipAttempt()
        return randomly.non_empty_subset(self.columns)


@dataclass
class PostgresSchema:
    """Tables, views, indexes and extended statistics of the public schema."""
    tables: List[PostgresTable] = field(default_factory=list)
    indexes: List[str] = field(default_factory=list)
    statistics: List[str] = field(default_factory=list)

    @property
    def database_tables(self) -> List[PostgresTable]:
        return [t for t in self.tables if not t.is_view]

    @property
    def views(self) -> List[PostgresTable]:
        return [t for t in self.tables if t.is_view]

    def get_table(self, name: str) -> Optional[PostgresTable]:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def get_random_table(self, randomly: "Randomly",
                         predicate: Optional[Callable[[PostgresTable], bool]] = None) -> PostgresTable:
        """Random table (or view) satisfying ``predicate``; SkipAttempt if there is none."""
        candidates = [t for t in self.tables if predicate is None or predicate(t)]
        if not candidates:
            raise SkipAttempt()
        return randomly.from_list(candidates)

    def get_random_index(self, randomly: "Randomly") -> str:
        if not self.indexes:
            raise SkipAttempt()
        return randomly.from_list(self.indexes)

    def free_name(self, prefix: str) -> str:
        """First ``<prefix><n>`` not used by any table, view, index or statistics object."""
        taken = {t.name for t in self.tables} | set(self.indexes) | set(self.statistics)
        n = 0
        while f"{prefix}{n}" in taken:
            n += 1
        return f"{prefix}{n}"

    @classmethod
    def from_connection(cls, connection) -> "PostgresSchema":
        """Read the catalog in a handful of bulk queries."""
        start_time = time.time()
        schema = cls()
        tables = {}
        with connection.cursor() as cur:
            cur.execute(TABLES_QUERY)
            for table_name, table_type, is_insertable_into in cur.fetchall():
                table = PostgresTable(name=table_name, is_view=table_type == 'VIEW',
                                      is_insertable=is_insertable_into == 'YES')
                tables[table_name] = table
                schema.tables.append(table)

            cur.execute(COLUMNS_QUERY)
            for table_name, column_name, data_type, is_nullable in cur.fetchall():
                table = tables.get(table_name)
                if table is None:
                    continue
                table.columns.append(PostgresColumn(
                    name=column_name,
                    table_name=table_name,
                    data_type=PostgresDataType.from_catalog(data_type),
                    nullable=is_nullable == 'YES',
                ))

            cur.execute(INDEXES_QUERY)
            schema.indexes = [row[0] for row in cur.fetchall()]

            cur.execute(STATISTICS_QUERY)
            schema.statistics = [row[0] for row in cur.fetchall()]

        logger.debug(f"Schema refreshed in {time.time() - start_time:.2f}s: "
                     f"{len(schema.database_tables)} tables, {len(schema.views)} views, "
                     f"{len(schema.indexes)} indexes")
        return schema
