"""
Descriptive records for a MySQL server, its databases, tables and columns.

The same records are produced whether metadata comes from a live connection
(information_schema) or from a parsed SQL dump, so search and replace never
need to know where it came from.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from grepdb.exceptions import MetadataError

STRING_TYPE_PREFIXES = (
    'char',
    'varchar',
    'tinyblob',
    'blob',
    'mediumblob',
    'longblob',
    'tinytext',
    'text',
    'mediumtext',
    'longtext',
)


@dataclass(frozen=True)
class ColumnMetadata:
    """A single column; identity is (database_name, table_name, column_name)."""

    database_name: str
    table_name: str
    column_name: str
    type: str
    max_length: Optional[int]
    primary_key: bool
    nullable: bool
    indexed: bool

    def is_string_type(self) -> bool:
        """True when the declared type can hold text (e.g. VARCHAR(100), TEXT, BLOB)."""
        column_type = self.type.strip().lower()
        return any(column_type.startswith(prefix) for prefix in STRING_TYPE_PREFIXES)


class TableMetadata:
    """A table with its columns, keyed by column name in discovery order."""

    def __init__(
        self,
        database_name: str,
        table_name: str,
        engine: str,
        collation: str,
        charset: str,
        row_count: int,
        columns: Iterable[ColumnMetadata],
    ):
        self._database_name = database_name
        self._table_name = table_name
        self._engine = engine
        self._collation = collation
        self._charset = charset
        self._row_count = row_count

        column_map = {}
        for column in columns:
            column_map[column.column_name] = column
        self._columns = MappingProxyType(column_map)

    @property
    def database_name(self) -> str:
        return self._database_name

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def engine(self) -> str:
        return self._engine

    @property
    def collation(self) -> str:
        return self._collation

    @property
    def charset(self) -> str:
        return self._charset

    @property
    def row_count(self) -> int:
        """Estimated row count, -1 when unknown (e.g. parsed from a dump)."""
        return self._row_count

    @property
    def columns(self) -> Mapping[str, ColumnMetadata]:
        return self._columns

    def has_column(self, column_name: str) -> bool:
        return column_name in self._columns

    def get_column_metadata(self, column_name: str) -> ColumnMetadata:
        if column_name not in self._columns:
            raise MetadataError(f'Table "{self._table_name}" doesn\'t contain column "{column_name}"')
        return self._columns[column_name]

    def has_string_type_column(self) -> bool:
        return any(column.is_string_type() for column in self._columns.values())

    def string_columns(self):
        """Columns that can hold text, in discovery order."""
        return [column for column in self._columns.values() if column.is_string_type()]

    def get_primary_key_metadata(self) -> Optional[ColumnMetadata]:
        """First column flagged as primary key, or None."""
        for column in self._columns.values():
            if column.primary_key:
                return column
        return None

    def primary_key_columns(self):
        """Every column of the primary key, in discovery order; more than one for a compound key."""
        return [column for column in self._columns.values() if column.primary_key]

    def __repr__(self):
        return f"TableMetadata({self._database_name!r}, {self._table_name!r}, columns={list(self._columns)!r})"


class DatabaseMetadata:
    """A database and its tables, keyed by table name."""

    def __init__(self, database_name: str, tables: Iterable[TableMetadata]):
        self._database_name = database_name
        self._tables = MappingProxyType({table.table_name: table for table in tables})

    @property
    def database_name(self) -> str:
        return self._database_name

    @property
    def tables(self) -> Mapping[str, TableMetadata]:
        return self._tables

    def get_table_metadata(self, table_name: str) -> TableMetadata:
        if table_name not in self._tables:
            raise MetadataError(f'Database "{self._database_name}" doesn\'t contain table "{table_name}"')
        return self._tables[table_name]

    def __repr__(self):
        return f"DatabaseMetadata({self._database_name!r}, tables={list(self._tables)!r})"


class ServerMetadata:
    """A server and its (non-system) databases, keyed by database name."""

    def __init__(self, host: str, databases: Iterable[DatabaseMetadata]):
        self._host = host
        self._databases = MappingProxyType({database.database_name: database for database in databases})

    @property
    def host(self) -> str:
        return self._host

    @property
    def databases(self) -> Mapping[str, DatabaseMetadata]:
        return self._databases

    def get_database_metadata(self, database_name: str) -> DatabaseMetadata:
        if database_name not in self._databases:
            raise MetadataError(f'Server "{self._host}" doesn\'t contain database "{database_name}"')
        return self._databases[database_name]
