"""
PostgreSQL dialect adapter (psycopg2).

Every session works on its own freshly created database:
1. connect to the maintenance database
2. DROP DATABASE IF EXISTS / CREATE DATABASE <name>
3. reconnect to the new database in autocommit mode and run the bootstrap
   statements

All of these steps are recorded in the reproduction record, so a failure log
replays from an empty server. The yugabyte dialect reuses the adapter with
YugabyteDB's connection defaults.
"""

import argparse
import dataclasses
from typing import Any, Dict, List, Optional, Sequence, TextIO, Tuple

import psycopg2

from config import DatabaseConfig
from core.actions import Action, QueryGenerator
from core.dialect import Dialect
from core.errors import SkipAttempt
from core.query import Query
from core.session import Session
from core.state import ReproductionRecord
from dialects.postgres import generators
from dialects.postgres.common import EXPRESSION_ERRORS
from dialects.postgres.expression import PostgresExpressionGenerator
from dialects.postgres.options import PostgresOptions
from dialects.postgres.schema import PostgresSchema
from oracles import ORACLE_REGISTRY
from oracles.base_oracle import BaseOracle, SelectTarget

BOOTSTRAP_ERRORS = (
    "could not open extension control file",
    "is not supported",
)

ORACLE_ERRORS = EXPRESSION_ERRORS + (
    "canceling statement due to statement timeout",
)

def with_extra_errors(generator: QueryGenerator, extra_errors: Tuple[str, ...]) -> QueryGenerator:
    """Wrap a statement generator so its queries also tolerate ``extra_errors``."""
    def generate(session: Session) -> Query:
        query = generator(session)
        return Query(query.query_string, query.expected_errors | set(extra_errors),
                     query.could_affect_schema)
    return generate


COLLATIONS_QUERY = """
    SELECT collname FROM pg_collation
    WHERE collprovider = 'c' AND collencoding IN (-1, 6)
    ORDER BY collname
"""


class PostgresDialect(Dialect):
    """Adapter for PostgreSQL servers."""

    name = "postgres"
    error_types = (psycopg2.Error,)

    default_port = 5432
    default_user = "postgres"
    default_maintenance_db = "postgres"
    bootstrap_statements = (
        "CREATE EXTENSION IF NOT EXISTS pg_prewarm",
        "SET max_parallel_workers_per_gather=16",
    )
    # Messages of server-specific limitations, tolerated by every statement.
    extra_expected_errors: Tuple[str, ...] = ()

    def __init__(self, database_config: Optional[DatabaseConfig] = None):
        super().__init__(database_config or DatabaseConfig())
        self._actions: Optional[List[Action]] = None

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            '--oracle',
            action='append',
            dest='oracles',
            choices=sorted(ORACLE_REGISTRY),
            help='Oracle to run; repeat to combine several (default: TLP_WHERE and NOREC)'
        )
        parser.add_argument(
            '--test-collations',
            action='store_true',
            help='Create databases with random encodings and collations'
        )

    @classmethod
    def options_from_args(cls, args: argparse.Namespace) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {}
        if getattr(args, 'oracles', None):
            overrides['oracles'] = args.oracles
        if getattr(args, 'test_collations', False):
            overrides['test_collations'] = True
        return overrides

    # --- factories ---

    def new_options(self, raw: Optional[Dict[str, Any]] = None) -> PostgresOptions:
        if isinstance(raw, PostgresOptions):
            return raw
        return PostgresOptions.from_mapping(raw)

    # --- connections ---

    @property
    def maintenance_db(self) -> str:
        return self.database_config.maintenance_db or self.default_maintenance_db

    def connection_params(self, dbname: str) -> Dict[str, Any]:
        config = self.database_config
        params = {
            'host': config.host,
            'port': config.port or self.default_port,
            'dbname': dbname,
            'user': config.user or self.default_user,
            'password': config.password,
            'connect_timeout': config.connect_timeout,
            'application_name': 'DBFuzz',
        }
        if config.enable_ssl:
            params['sslmode'] = config.ssl_mode
        return params

    def connect(self, dbname: str):
        connection = psycopg2.connect(**self.connection_params(dbname))
        connection.autocommit = True
        return connection

    def collations(self, connection) -> List[str]:
        with connection.cursor() as cur:
            cur.execute(COLLATIONS_QUERY)
            return [row[0] for row in cur.fetchall()]

    def create_database_command(self, session: Session, connection) -> str:
        r = session.randomly
        sql = f"CREATE DATABASE {session.database_name}"
        if session.dialect_options.test_collations and r.get_boolean():
            if r.get_boolean():
                sql += " WITH ENCODING 'utf8'"
            collations = self.collations(connection)
            for category in ("LC_COLLATE", "LC_CTYPE"):
                if collations and r.get_boolean():
                    sql += f" {category} = '{r.from_list(collations)}'"
            sql += " TEMPLATE template0"
        return sql

    def open_connection(self, session: Session) -> Any:
        record = session.state
        database_name = session.database_name

        connection = self.connect(self.maintenance_db)
        try:
            create_command = self.create_database_command(session, connection)
            record.log_statement(f"\\c {self.maintenance_db};")
            record.log_statement(f"DROP DATABASE IF EXISTS {database_name}")
            record.log_statement(create_command)
            record.log_statement(f"\\c {database_name};")
            with connection.cursor() as cur:
                cur.execute(f"DROP DATABASE IF EXISTS {database_name}")
                cur.execute(create_command)
        finally:
            connection.close()

        session.connection = self.connect(database_name)
        self.logger.debug(f"Created database {database_name}")
        for statement in self.bootstrap_statements:
            session.execute(Query(statement, BOOTSTRAP_ERRORS + self.extra_expected_errors))
        return session.connection

    def database_version(self, session: Session) -> Optional[str]:
        with session.connection.cursor() as cur:
            cur.execute("SELECT version()")
            row = cur.fetchone()
        return row[0] if row else None

    # --- schema and workload ---

    def refresh_schema(self, session: Session) -> PostgresSchema:
        return PostgresSchema.from_connection(session.connection)

    def actions(self) -> Sequence[Action]:
        if not self.extra_expected_errors:
            return generators.POSTGRES_ACTIONS
        if self._actions is None:
            self._actions = [
                dataclasses.replace(action, generator=with_extra_errors(
                    action.generator, self.extra_expected_errors))
                for action in generators.POSTGRES_ACTIONS
            ]
        return self._actions

    def generate_table(self, session: Session) -> Query:
        if self.extra_expected_errors:
            return with_extra_errors(generators.create_table, self.extra_expected_errors)(session)
        return generators.create_table(session)

    def count_tables(self, session: Session) -> int:
        return len(session.schema.database_tables)

    def min_table_count(self, session: Session) -> int:
        return session.randomly.from_options(1, 2)

    def after_statement(self, session: Session, query: Query) -> None:
        if not session.schema.database_tables:
            raise SkipAttempt()

    def after_workload(self, session: Session) -> None:
        session.execute(Query("COMMIT", could_affect_schema=True))
        session.execute(Query("SET SESSION statement_timeout = 5000"))

    # --- oracles ---

    def select_target(self, session: Session) -> SelectTarget:
        """Random tables (joined by cross product), their columns and a predicate over them."""
        r = session.randomly
        schema = session.schema
        if not schema.tables:
            raise SkipAttempt()
        tables = r.non_empty_subset(schema.tables)[:2]
        columns = [column for table in tables for column in table.columns]
        generator = PostgresExpressionGenerator(r, columns, qualify_columns=True)
        return SelectTarget(
            tables=[t.name for t in tables],
            columns=[c.full_name for c in columns],
            predicate=generator.generate_predicate(),
        )

    def build_oracles(self, session: Session) -> List[BaseOracle]:
        return [ORACLE_REGISTRY[name](self.select_target, ORACLE_ERRORS + self.extra_expected_errors)
                for name in session.dialect_options.oracles]

    def write_diagnostics(self, writer: TextIO, record: ReproductionRecord) -> None:
        if record.diagnostics:
            writer.write("-- oracle state:\n")
        super().write_diagnostics(writer, record)


class YugabyteDialect(PostgresDialect):
    """Adapter for YugabyteDB's PostgreSQL-compatible YSQL API."""

    name = "yugabyte"

    default_port = 5433
    default_user = "yugabyte"
    default_maintenance_db = "yugabyte"
    extra_expected_errors = (
        "not supported yet",
        "not yet supported",
        "Not supported yet",
    )
