"""
Build metadata records from a live server (information_schema) or from a mysqldump file.
"""

from abc import ABC, abstractmethod

from grepdb.exceptions import MetadataError
from grepdb.metadata import ColumnMetadata, DatabaseMetadata, ServerMetadata, TableMetadata
from grepdb.sql_parser import Parser

# Databases MySQL uses for itself; never searched
SYSTEM_DATABASES = ('information_schema', 'performance_schema', 'sys', 'mysql')

LIST_DATABASES_SQL = """
    SHOW DATABASES WHERE `Database` NOT IN ('information_schema', 'performance_schema', 'sys', 'mysql')
"""

LIST_TABLES_SQL = """
    SELECT t.TABLE_NAME AS name
    FROM   information_schema.TABLES t
    WHERE  t.TABLE_SCHEMA = :schema
    AND    t.TABLE_TYPE = 'BASE TABLE'
    ORDER  BY t.TABLE_NAME
"""

TABLE_SQL = """
    SELECT t.TABLE_NAME AS name,
           t.ENGINE AS engine,
           t.TABLE_COLLATION AS collation,
           t.TABLE_ROWS AS row_count,
           cs.CHARACTER_SET_NAME AS charset
    FROM   information_schema.TABLES t
    LEFT JOIN information_schema.COLLATION_CHARACTER_SET_APPLICABILITY cs
           ON t.TABLE_COLLATION = cs.COLLATION_NAME
    WHERE  t.TABLE_SCHEMA = :schema
    AND    t.TABLE_NAME = :table_name
"""

COLUMNS_SQL = """
    SELECT c.COLUMN_NAME AS name,
           c.COLUMN_TYPE AS type,
           c.CHARACTER_MAXIMUM_LENGTH AS max_length,
           'PRI' = c.COLUMN_KEY AS is_primary_key,
           'YES' = c.IS_NULLABLE AS is_nullable,
           (
               SELECT COUNT(*)
               FROM   information_schema.STATISTICS
               WHERE  TABLE_SCHEMA = :schema
               AND    TABLE_NAME = :table_name
               AND    COLUMN_NAME = c.COLUMN_NAME
           ) AS is_indexed
    FROM   information_schema.COLUMNS c
    WHERE  c.TABLE_SCHEMA = :schema
    AND    c.TABLE_NAME = :table_name
    ORDER  BY c.ORDINAL_POSITION
"""


class MetadataFactory(ABC):
    """Source of database and table metadata."""

    @abstractmethod
    def get_database_metadata(self, database_name=None) -> DatabaseMetadata:
        """Metadata for every table in a database."""

    @abstractmethod
    def get_table_metadata(self, table_name, database_name=None) -> TableMetadata:
        """Metadata for a single table, raising MetadataError when it doesn't exist."""


class ConnectionMetadataFactory(MetadataFactory):
    """Reads metadata from information_schema through a QueryExecutor."""

    def __init__(self, executor, database_name=None, host=None):
        self.executor = executor
        self.database_name = database_name
        self.host = host

    def _database(self, database_name):
        database_name = database_name or self.database_name
        if not database_name:
            raise MetadataError("No database name given")
        return database_name

    def list_databases(self):
        """Names of the non-system databases on the server."""
        return [
            name for name in self.executor.fetch_column(LIST_DATABASES_SQL)
            if name not in SYSTEM_DATABASES
        ]

    def list_tables(self, database_name=None):
        database_name = self._database(database_name)
        return self.executor.fetch_column(LIST_TABLES_SQL, {'schema': database_name})

    def get_server_metadata(self) -> ServerMetadata:
        databases = [self.get_database_metadata(name) for name in self.list_databases()]
        return ServerMetadata(self.host or '', databases)

    def get_database_metadata(self, database_name=None, table_names=None) -> DatabaseMetadata:
        """
        Metadata for every base table in the database.

        When table_names is given, only those tables are described.
        """
        database_name = self._database(database_name)
        if table_names is None:
            table_names = self.list_tables(database_name)

        tables = [self.get_table_metadata(name, database_name) for name in table_names]
        return DatabaseMetadata(database_name, tables)

    def get_table_metadata(self, table_name, database_name=None) -> TableMetadata:
        database_name = self._database(database_name)
        params = {'schema': database_name, 'table_name': table_name}

        table_rows = list(self.executor.fetch_rows(TABLE_SQL, params))
        if not table_rows:
            raise MetadataError(f'Database "{database_name}" doesn\'t contain table "{table_name}"')
        table_row = table_rows[0]

        columns = []
        for column_row in self.executor.fetch_rows(COLUMNS_SQL, params):
            max_length = column_row['max_length']
            columns.append(ColumnMetadata(
                database_name=database_name,
                table_name=table_name,
                column_name=column_row['name'],
                type=column_row['type'],
                max_length=None if max_length is None else int(max_length),
                primary_key=bool(column_row['is_primary_key']),
                nullable=bool(column_row['is_nullable']),
                indexed=bool(column_row['is_indexed']),
            ))

        return TableMetadata(
            database_name=database_name,
            table_name=table_name,
            engine=table_row['engine'],
            collation=table_row['collation'],
            charset=table_row['charset'],
            row_count=-1 if table_row['row_count'] is None else int(table_row['row_count']),
            columns=columns,
        )


class DumpMetadataFactory(MetadataFactory):
    """Reads metadata from the CREATE TABLE statements of a mysqldump file."""

    def __init__(self, file_path, parser=None, database_name=None):
        self.file_path = file_path
        self.parser = parser or Parser()
        self.database_name = database_name

    def get_database_metadata(self, database_name=None) -> DatabaseMetadata:
        database_name = database_name or self.database_name or str(self.file_path)
        tables = self.parser.parse_all_table_metadata(self.file_path, database_name)
        return DatabaseMetadata(database_name, tables)

    def get_table_metadata(self, table_name, database_name=None) -> TableMetadata:
        return self.get_database_metadata(database_name).get_table_metadata(table_name)
