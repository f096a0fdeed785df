"""
Find rows containing a search term.

Only string-typed columns are fetched and scanned. The SQL LIKE filter is an
over-approximation, so every fetched cell is checked again in Python and a
row is only reported when at least one of its cells really contains the term.
"""

from typing import Iterator, Optional, Sequence

from grepdb.metadata import DatabaseMetadata, ServerMetadata, TableMetadata
from grepdb.results import FieldSearchResult, RowSearchResult

LIKE_ESCAPE = '!'


def quote_identifier(name: str) -> str:
    return '`' + name.replace('`', '``') + '`'


def qualified_table_name(table: TableMetadata) -> str:
    return f"{quote_identifier(table.database_name)}.{quote_identifier(table.table_name)}"


def like_pattern(search_term: str) -> str:
    """Wrap search_term in % wildcards, escaping LIKE metacharacters so the term matches literally."""
    escaped = (
        search_term
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace('%', LIKE_ESCAPE + '%')
        .replace('_', LIKE_ESCAPE + '_')
    )
    return f"%{escaped}%"


def as_text(value) -> Optional[str]:
    """Cell value as str; BLOB bytes are decoded so they survive a round trip unchanged."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode('utf-8', 'surrogateescape')
    return str(value)


def contains_term(value, search_term: str) -> bool:
    """Case-insensitive containment, matching what LIKE admits under a case-insensitive collation."""
    text = as_text(value)
    if text is None:
        return False
    return search_term.lower() in text.lower()


def check_search_term(search_term):
    if not search_term:
        raise ValueError("Search term must not be empty")


def _where_clause(table: TableMetadata) -> str:
    return ' OR '.join(
        f"{quote_identifier(column.column_name)} LIKE :search_term ESCAPE '{LIKE_ESCAPE}'"
        for column in table.string_columns()
    )


class Search:
    """Lazily search tables, databases or a whole server through a query executor."""

    def __init__(self, executor):
        self.executor = executor

    def count_table(self, table: TableMetadata, search_term: str) -> int:
        """Number of rows the LIKE filter admits; an upper bound on the rows search_table yields."""
        check_search_term(search_term)
        if not table.has_string_type_column():
            return 0

        sql = f"SELECT COUNT(*) FROM {qualified_table_name(table)} WHERE {_where_clause(table)}"
        return int(self.executor.fetch_scalar(sql, {'search_term': like_pattern(search_term)}) or 0)

    def search_table(self, table: TableMetadata, search_term: str) -> Iterator[RowSearchResult]:
        check_search_term(search_term)
        return self._search_table(table, search_term)

    def _search_table(self, table, search_term):
        string_columns = table.string_columns()
        if not string_columns:
            return

        primary_key = table.get_primary_key_metadata()
        key_names = [column.column_name for column in table.primary_key_columns()]
        select_names = key_names + [
            column.column_name for column in string_columns if column.column_name not in key_names
        ]

        sql = (
            f"SELECT {', '.join(quote_identifier(name) for name in select_names)} "
            f"FROM {qualified_table_name(table)} "
            f"WHERE {_where_clause(table)}"
        )

        for row in self.executor.fetch_rows(sql, {'search_term': like_pattern(search_term)}):
            fields = [
                FieldSearchResult(column, row[column.column_name])
                for column in string_columns
                if contains_term(row[column.column_name], search_term)
            ]
            if not fields:
                continue

            yield RowSearchResult(
                table,
                fields,
                primary_key,
                row[primary_key.column_name] if primary_key is not None else None,
                {name: row[name] for name in key_names},
            )

    def search_database(
        self,
        database: DatabaseMetadata,
        search_term: str,
        table_names: Sequence[str] = None,
    ) -> Iterator[RowSearchResult]:
        """Search every table (or just table_names) of a database, table by table."""
        check_search_term(search_term)
        return self._search_database(database, search_term, table_names)

    def _search_database(self, database, search_term, table_names):
        for table in selected_tables(database, table_names):
            yield from self._search_table(table, search_term)

    def search_server(self, server: ServerMetadata, search_term: str) -> Iterator[RowSearchResult]:
        check_search_term(search_term)
        return self._search_server(server, search_term)

    def _search_server(self, server, search_term):
        for database in server.databases.values():
            yield from self._search_database(database, search_term, None)


def selected_tables(database: DatabaseMetadata, table_names=None):
    if table_names is None:
        return list(database.tables.values())
    return [database.get_table_metadata(name) for name in table_names]
