"""
Statement generators of the PostgreSQL dialect.

Each generator takes the session and returns one Query whose allow-list names
the errors that random construction can legitimately provoke. A generator
raises SkipAttempt when the current schema offers nothing to work on (no
index to drop, no insertable table, ...).
"""

from typing import TYPE_CHECKING, List

from core.actions import Action, ranged_weight
from core.errors import SkipAttempt
from core.query import ExpectedErrors, Query
from dialects.postgres.common import (
    PostgresDataType,
    TRANSACTION_ERRORS,
    add_common_expression_errors,
    add_common_insert_update_errors,
    add_common_table_errors,
    table_name,
)
from dialects.postgres.expression import PostgresExpressionGenerator, quote_string

if TYPE_CHECKING:
    from core.session import Session
    from dialects.postgres.schema import PostgresTable

# Planner and executor settings worth flipping between statements.
SETTINGS = {
    "enable_bitmapscan": ("on", "off"),
    "enable_hashagg": ("on", "off"),
    "enable_hashjoin": ("on", "off"),
    "enable_indexscan": ("on", "off"),
    "enable_indexonlyscan": ("on", "off"),
    "enable_material": ("on", "off"),
    "enable_mergejoin": ("on", "off"),
    "enable_nestloop": ("on", "off"),
    "enable_seqscan": ("on", "off"),
    "enable_sort": ("on", "off"),
    "enable_partition_pruning": ("on", "off"),
    "jit": ("on", "off"),
    "random_page_cost": ("0", "1", "4", "100"),
    "seq_page_cost": ("0", "1", "10"),
    "work_mem": ("64", "1024", "65536"),
    "default_statistics_target": ("1", "100", "10000"),
    "constraint_exclusion": ("on", "off", "partition"),
}

CATALOG_QUERIES = (
    "SELECT * FROM information_schema.tables",
    "SELECT * FROM information_schema.columns",
    "SELECT * FROM pg_stats",
    "SELECT * FROM pg_statistic_ext",
    "SELECT * FROM pg_indexes",
    "SELECT * FROM pg_stat_user_tables",
)


def _expression_generator(session: "Session", table: "PostgresTable") -> PostgresExpressionGenerator:
    return PostgresExpressionGenerator(session.randomly, table.columns)


def _random_base_table(session: "Session") -> "PostgresTable":
    return session.schema.get_random_table(session.randomly, lambda t: not t.is_view)


# --- schema objects ---

def create_table(session: "Session") -> Query:
    """CREATE TABLE t<n> with one to four typed columns and optional constraints."""
    r = session.randomly
    name = table_name(len(session.schema.database_tables))
    errors = ExpectedErrors()
    add_common_table_errors(errors)
    add_common_expression_errors(errors)
    errors.add("multiple primary keys for table")

    columns = []
    has_primary_key = False
    for i in range(r.get_integer(1, 4)):
        data_type = r.from_list(list(PostgresDataType))
        definition = f"c{i} {data_type.value}"
        if not has_primary_key and r.get_boolean_with_probability(0.2):
            definition += " PRIMARY KEY"
            has_primary_key = True
        elif r.get_boolean_with_probability(0.2):
            definition += " UNIQUE"
        if r.get_boolean_with_probability(0.2):
            definition += " NOT NULL"
        if r.get_boolean_with_small_probability():
            generator = PostgresExpressionGenerator(r, max_depth=1)
            definition += f" DEFAULT {generator.generate_constant(data_type)}"
        columns.append(definition)

    prefix = "CREATE UNLOGGED TABLE" if r.get_boolean_with_small_probability() else "CREATE TABLE"
    return Query(f"{prefix} {name}({', '.join(columns)})", errors, could_affect_schema=True)


def create_view(session: "Session") -> Query:
    r = session.randomly
    table = session.schema.get_random_table(r)
    columns = table.random_non_empty_columns(r)
    errors = ExpectedErrors()
    add_common_table_errors(errors)
    add_common_expression_errors(errors)
    errors.add_all(["cannot change name of view column", "cannot drop columns from view",
                    "cannot change data type of view column", "is not a view",
                    "specified more than once"])

    name = session.schema.free_name("v")
    sql = f"CREATE {'OR REPLACE ' if r.get_boolean() else ''}VIEW {name} AS SELECT "
    sql += ", ".join(c.name for c in columns) + f" FROM {table.name}"
    if r.get_boolean():
        sql += f" WHERE {_expression_generator(session, table).generate_predicate()}"
    return Query(sql, errors, could_affect_schema=True)


def create_index(session: "Session") -> Query:
    r = session.randomly
    table = _random_base_table(session)
    errors = ExpectedErrors()
    add_common_table_errors(errors)
    add_common_expression_errors(errors)
    errors.add_all(["could not create unique index", "does not support unique indexes",
                    "has no default operator class for access method",
                    "functions in index predicate must be marked IMMUTABLE",
                    "index row size", "index row requires"])

    unique = r.get_boolean_with_probability(0.3)
    method = r.from_options("btree", "hash") if not unique else "btree"
    columns = table.random_non_empty_columns(r)
    if method == "hash":
        columns = columns[:1]
    parts = []
    for column in columns:
        part = column.name
        if method == "btree" and r.get_boolean():
            part += " " + r.from_options("ASC", "DESC")
            if r.get_boolean():
                part += " " + r.from_options("NULLS FIRST", "NULLS LAST")
        parts.append(part)

    name = session.schema.free_name("i")
    sql = f"CREATE {'UNIQUE ' if unique else ''}INDEX "
    if r.get_boolean_with_small_probability():
        sql += "CONCURRENTLY "
    if r.get_boolean():
        sql += "IF NOT EXISTS "
    sql += f"{name} ON {table.name} USING {method} ({', '.join(parts)})"
    if r.get_boolean_with_probability(0.2):
        sql += f" WHERE {_expression_generator(session, table).generate_predicate()}"
    return Query(sql, errors, could_affect_schema=True)


def drop_index(session: "Session") -> Query:
    r = session.randomly
    index = session.schema.get_random_index(r)
    errors = ExpectedErrors(TRANSACTION_ERRORS)
    errors.add_all(["cannot drop index", "does not exist", "because constraint",
                    "depends on it", "DROP INDEX CONCURRENTLY does not support CASCADE"])
    sql = "DROP INDEX "
    if r.get_boolean_with_small_probability():
        sql += "CONCURRENTLY "
    if r.get_boolean():
        sql += "IF EXISTS "
    sql += index
    if r.get_boolean():
        sql += " " + r.from_options("CASCADE", "RESTRICT")
    return Query(sql, errors, could_affect_schema=True)


def alter_table(session: "Session") -> Query:
    r = session.randomly
    table = _random_base_table(session)
    errors = ExpectedErrors()
    add_common_table_errors(errors)
    add_common_expression_errors(errors)
    errors.add_all(["cannot drop column", "contains null values", "is in a primary key",
                    "cannot alter type of a column used by a view or rule",
                    "could not create unique index", "cannot drop", "because other objects depend on it",
                    "cannot be cast automatically to type", "column must be added to child tables too",
                    "tables can have at most", "specified more than once"])

    column = r.from_list(table.columns) if table.columns else None
    kind = r.from_options("add_column", "drop_column", "set_not_null", "drop_not_null",
                          "set_statistics", "alter_type", "set_storage")
    if column is None or kind == "add_column":
        data_type = r.from_list(list(PostgresDataType))
        new_name = f"c{len(table.columns)}"
        action = f"ADD COLUMN {new_name} {data_type.value}"
    elif kind == "drop_column":
        action = f"DROP COLUMN {column.name}" + (" CASCADE" if r.get_boolean() else "")
    elif kind == "set_not_null":
        action = f"ALTER COLUMN {column.name} SET NOT NULL"
    elif kind == "drop_not_null":
        action = f"ALTER COLUMN {column.name} DROP NOT NULL"
    elif kind == "set_statistics":
        action = f"ALTER COLUMN {column.name} SET STATISTICS {r.get_integer(0, 10000)}"
    elif kind == "alter_type":
        data_type = r.from_list(list(PostgresDataType))
        action = f"ALTER COLUMN {column.name} SET DATA TYPE {data_type.value}"
        if r.get_boolean():
            action += f" USING CAST({column.name} AS {data_type.value})"
    else:
        storage = r.from_options("PLAIN", "EXTERNAL", "EXTENDED", "MAIN")
        action = f"ALTER COLUMN {column.name} SET STORAGE {storage}"
        errors.add("can only have storage")
    return Query(f"ALTER TABLE {table.name} {action}", errors, could_affect_schema=True)


def create_sequence(session: "Session") -> Query:
    r = session.randomly
    errors = ExpectedErrors(["already exists", "must be less than MAXVALUE", "cannot be less than MINVALUE",
                             "cannot be greater than MAXVALUE", "INCREMENT must not be zero",
                             "is out of range", "out of range"])
    sql = "CREATE SEQUENCE "
    if r.get_boolean():
        sql += "IF NOT EXISTS "
    sql += session.schema.free_name("seq")
    if r.get_boolean():
        sql += f" INCREMENT BY {r.get_interesting_integer()}"
    if r.get_boolean():
        sql += f" MINVALUE {r.get_interesting_integer()}"
    if r.get_boolean():
        sql += f" MAXVALUE {r.get_interesting_integer()}"
    if r.get_boolean():
        sql += f" START WITH {r.get_interesting_integer()}"
    if r.get_boolean():
        sql += " CYCLE"
    return Query(sql, errors, could_affect_schema=True)


def create_statistics(session: "Session") -> Query:
    r = session.randomly
    table = _random_base_table(session)
    if len(table.columns) < 2:
        raise SkipAttempt()
    columns = r.non_empty_subset(table.columns)
    if len(columns) < 2:
        columns = table.columns[:2]
    errors = ExpectedErrors(["already exists", "cannot have more than 8 columns in statistics",
                             "duplicate column name in statistics definition",
                             "column data type not supported"])
    sql = "CREATE STATISTICS "
    if r.get_boolean():
        sql += "IF NOT EXISTS "
    sql += session.schema.free_name("s")
    if r.get_boolean():
        kinds = r.non_empty_subset(["ndistinct", "dependencies", "mcv"])
        sql += f" ({', '.join(kinds)})"
    sql += f" ON {', '.join(c.name for c in columns)} FROM {table.name}"
    return Query(sql, errors, could_affect_schema=True)


def drop_statistics(session: "Session") -> Query:
    r = session.randomly
    if not session.schema.statistics:
        raise SkipAttempt()
    name = r.from_list(session.schema.statistics)
    return Query(f"DROP STATISTICS {name}", ["does not exist"], could_affect_schema=True)


def comment_on(session: "Session") -> Query:
    r = session.randomly
    table = session.schema.get_random_table(r)
    if table.columns and r.get_boolean():
        target = f"COLUMN {table.name}.{r.from_list(table.columns).name}"
    else:
        target = f"{'VIEW' if table.is_view else 'TABLE'} {table.name}"
    text = "NULL" if r.get_boolean_with_small_probability() else quote_string(r.get_string())
    return Query(f"COMMENT ON {target} IS {text}", ["does not exist", "is not a"])


# --- data modification ---

def insert(session: "Session") -> Query:
    r = session.randomly
    table = session.schema.get_random_table(r, lambda t: t.is_insertable)
    columns = [c for c in table.random_non_empty_columns(r) if c.data_type is not None]
    if not columns:
        raise SkipAttempt()
    errors = ExpectedErrors()
    add_common_insert_update_errors(errors)
    add_common_expression_errors(errors)
    errors.add("ON CONFLICT DO UPDATE command cannot affect row a second time")

    generator = PostgresExpressionGenerator(r, max_depth=1)
    rows = []
    for _ in range(r.get_integer(1, 3)):
        rows.append("(" + ", ".join(generator.generate_constant(c.data_type) for c in columns) + ")")
    sql = f"INSERT INTO {table.name}({', '.join(c.name for c in columns)}) VALUES {', '.join(rows)}"
    if r.get_boolean_with_small_probability():
        sql += " ON CONFLICT DO NOTHING"
    return Query(sql, errors)


def update(session: "Session") -> Query:
    r = session.randomly
    table = session.schema.get_random_table(r, lambda t: t.is_insertable)
    columns = [c for c in table.random_non_empty_columns(r) if c.data_type is not None]
    if not columns:
        raise SkipAttempt()
    errors = ExpectedErrors()
    add_common_insert_update_errors(errors)
    add_common_expression_errors(errors)

    generator = _expression_generator(session, table)
    assignments = []
    for column in columns:
        if not r.get_boolean():
            value = generator.generate_constant(column.data_type)
        elif r.get_boolean():
            value = "DEFAULT"
        else:
            value = f"({generator.generate_expression(column.data_type)})"
        assignments.append(f"{column.name} = {value}")
    sql = f"UPDATE {table.name} SET {', '.join(assignments)}"
    if not r.get_boolean_with_small_probability():
        sql += f" WHERE {generator.generate_predicate()}"
    return Query(sql, errors)


def delete(session: "Session") -> Query:
    r = session.randomly
    table = session.schema.get_random_table(r, lambda t: t.is_insertable)
    errors = ExpectedErrors()
    add_common_insert_update_errors(errors)
    add_common_expression_errors(errors)
    sql = f"DELETE FROM {'ONLY ' if r.get_boolean_with_small_probability() else ''}{table.name}"
    if r.get_boolean_with_large_probability():
        sql += f" WHERE {_expression_generator(session, table).generate_predicate()}"
    return Query(sql, errors)


def truncate(session: "Session") -> Query:
    r = session.randomly
    if not session.schema.database_tables:
        raise SkipAttempt()
    tables = r.non_empty_subset(session.schema.database_tables)
    sql = "TRUNCATE" + (" TABLE" if r.get_boolean() else "")
    if r.get_boolean_with_small_probability():
        sql += " ONLY"
    sql += " " + ", ".join(t.name for t in tables)
    if r.get_boolean():
        sql += " " + r.from_options("RESTART IDENTITY", "CONTINUE IDENTITY")
    if r.get_boolean():
        sql += " " + r.from_options("CASCADE", "RESTRICT")
    return Query(sql, ["cannot truncate a table referenced in a foreign key constraint", "is not a table"])


# --- maintenance ---

def analyze(session: "Session") -> Query:
    r = session.randomly
    sql = "ANALYZE"
    if r.get_boolean():
        sql += " VERBOSE"
    if session.schema.database_tables and r.get_boolean():
        table = _random_base_table(session)
        sql += f" {table.name}"
        if table.columns and r.get_boolean():
            sql += f"({', '.join(c.name for c in table.random_non_empty_columns(r))})"
    return Query(sql, ["deadlock", "specified more than once"])


def vacuum(session: "Session") -> Query:
    r = session.randomly
    sql = "VACUUM"
    if r.get_boolean():
        flags = r.non_empty_subset(["FULL", "FREEZE", "ANALYZE", "VERBOSE", "DISABLE_PAGE_SKIPPING"])
        sql += f" ({', '.join(flags)})"
    if session.schema.database_tables and r.get_boolean():
        sql += f" {_random_base_table(session).name}"
    errors = ExpectedErrors(TRANSACTION_ERRORS)
    errors.add_all(["ANALYZE option must be specified when a column list is provided",
                    "VACUUM option DISABLE_PAGE_SKIPPING cannot be used with FULL", "deadlock"])
    return Query(sql, errors)


def cluster(session: "Session") -> Query:
    r = session.randomly
    table = _random_base_table(session)
    sql = "CLUSTER " + ("VERBOSE " if r.get_boolean() else "") + table.name
    if session.schema.indexes and r.get_boolean():
        sql += f" USING {r.from_list(session.schema.indexes)}"
    return Query(sql, ["there is no previously clustered index", "cannot cluster", "is not an index for table",
                       "does not exist", "cannot cluster on partial index", "because access method does not handle"])


def reindex(session: "Session") -> Query:
    r = session.randomly
    errors = ExpectedErrors(TRANSACTION_ERRORS)
    errors.add_all(["could not create unique index", "does not exist", "can only reindex the currently open database",
                    "cannot reindex system catalogs concurrently", "deadlock"])
    sql = "REINDEX " + ("(VERBOSE) " if r.get_boolean() else "")
    kind = r.from_options("TABLE", "INDEX", "DATABASE")
    if kind == "INDEX" and session.schema.indexes:
        sql += f"INDEX {r.from_list(session.schema.indexes)}"
    elif kind == "DATABASE":
        sql += f"DATABASE {session.database_name}"
    else:
        sql += f"TABLE {_random_base_table(session).name}"
    return Query(sql, errors)


def discard(session: "Session") -> Query:
    what = session.randomly.from_options("ALL", "PLANS", "SEQUENCES", "TEMP")
    return Query(f"DISCARD {what}", TRANSACTION_ERRORS, could_affect_schema=what in ("ALL", "TEMP"))


# --- session and transaction control ---

def transaction(session: "Session") -> Query:
    r = session.randomly
    if r.get_boolean():
        return Query("COMMIT", could_affect_schema=True)
    if r.get_boolean():
        sql = "BEGIN"
        if r.get_boolean():
            sql += " ISOLATION LEVEL " + r.from_options("SERIALIZABLE", "REPEATABLE READ",
                                                        "READ COMMITTED", "READ UNCOMMITTED")
        return Query(sql)
    return Query("ROLLBACK", could_affect_schema=True)


def set_setting(session: "Session") -> Query:
    r = session.randomly
    name = r.from_list(sorted(SETTINGS))
    scope = r.from_options("", "SESSION ", "LOCAL ")
    return Query(f"SET {scope}{name} = {r.from_list(SETTINGS[name])}",
                 ["cannot be changed", "invalid value for parameter", "unrecognized configuration parameter"])


def set_constraints(session: "Session") -> Query:
    return Query(f"SET CONSTRAINTS ALL {session.randomly.from_options('DEFERRED', 'IMMEDIATE')}")


def reset_role(session: "Session") -> Query:
    return Query("RESET ROLE")


def reset(session: "Session") -> Query:
    return Query("RESET ALL")


def _channel(session: "Session") -> str:
    return session.randomly.from_list(session.dialect_options.notification_channels)


def notify(session: "Session") -> Query:
    r = session.randomly
    sql = f"NOTIFY {_channel(session)}"
    if r.get_boolean():
        sql += f", {quote_string(r.get_string())}"
    return Query(sql, ["payload string too long"])


def listen(session: "Session") -> Query:
    return Query(f"LISTEN {_channel(session)}")


def unlisten(session: "Session") -> Query:
    target = "*" if session.randomly.get_boolean() else _channel(session)
    return Query(f"UNLISTEN {target}")


def query_catalog(session: "Session") -> Query:
    return Query(session.randomly.from_list(CATALOG_QUERIES))


def _insert_weight(session: "Session") -> int:
    return session.randomly.get_integer(0, session.options.max_num_inserts)


POSTGRES_ACTIONS: List[Action] = [
    Action("ANALYZE", analyze, ranged_weight(0, 3)),
    Action("ALTER_TABLE", alter_table, ranged_weight(0, 5)),
    Action("CLUSTER", cluster, ranged_weight(0, 3)),
    Action("COMMIT", transaction, ranged_weight(0, 0)),
    Action("CREATE_STATISTICS", create_statistics, ranged_weight(0, 5)),
    Action("DROP_STATISTICS", drop_statistics, ranged_weight(0, 2)),
    Action("DELETE", delete, ranged_weight(0, 5)),
    Action("DISCARD", discard, ranged_weight(0, 5)),
    Action("DROP_INDEX", drop_index, ranged_weight(0, 5)),
    Action("INSERT", insert, _insert_weight),
    Action("UPDATE", update, ranged_weight(0, 10)),
    Action("TRUNCATE", truncate, ranged_weight(0, 2)),
    Action("VACUUM", vacuum, ranged_weight(0, 2)),
    Action("REINDEX", reindex, ranged_weight(0, 3)),
    Action("SET", set_setting, ranged_weight(0, 5)),
    Action("CREATE_INDEX", create_index, ranged_weight(0, 3)),
    Action("SET_CONSTRAINTS", set_constraints, ranged_weight(0, 2)),
    Action("RESET_ROLE", reset_role, ranged_weight(0, 5)),
    Action("COMMENT_ON", comment_on, ranged_weight(0, 2)),
    Action("RESET", reset, ranged_weight(0, 3)),
    Action("NOTIFY", notify, ranged_weight(0, 2)),
    Action("LISTEN", listen, ranged_weight(0, 2)),
    Action("UNLISTEN", unlisten, ranged_weight(0, 2)),
    Action("CREATE_SEQUENCE", create_sequence, ranged_weight(0, 2)),
    Action("CREATE_VIEW", create_view, ranged_weight(0, 2)),
    Action("QUERY_CATALOG", query_catalog, ranged_weight(0, 5)),
]
