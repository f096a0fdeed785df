import os
from contextlib import contextmanager

from rich.console import Console
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import text  # Import text for raw SQL queries

from grepdb.config import load_settings, validate_db_config
from grepdb.exceptions import ConfigurationError, DatabaseError

console = Console()

# Global variables for lazy database connection
_engine = None
_connection_status = None
_connection_error = None


class QueryExecutor:
    """
    Thin wrapper over a SQLAlchemy Connection used by search and replace.

    Rows come back as plain dicts keyed by column name. Transactions are
    explicit: begin() is a no-op while one is already open.
    """

    def __init__(self, connection):
        self.connection = connection

    @property
    def dialect_name(self) -> str:
        return self.connection.dialect.name

    def fetch_rows(self, sql, params=None):
        """Lazily yield each row of a query as a dict."""
        try:
            result = self.connection.execute(text(sql), params or {})
        except SQLAlchemyError as e:
            raise DatabaseError(f"Query failed: {e}") from e
        for row in result:
            yield dict(row._mapping)

    def fetch_scalar(self, sql, params=None):
        try:
            return self.connection.execute(text(sql), params or {}).scalar()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Query failed: {e}") from e

    def fetch_column(self, sql, params=None):
        """First column of every row, as a list."""
        try:
            return list(self.connection.execute(text(sql), params or {}).scalars())
        except SQLAlchemyError as e:
            raise DatabaseError(f"Query failed: {e}") from e

    def execute(self, sql, params=None) -> int:
        """Run a data-changing statement and return the affected row count."""
        try:
            return self.connection.execute(text(sql), params or {}).rowcount
        except SQLAlchemyError as e:
            raise DatabaseError(f"Statement failed: {e}") from e

    def begin(self):
        if not self.connection.in_transaction():
            self.connection.begin()

    def commit(self):
        if self.connection.in_transaction():
            self.connection.commit()

    def rollback(self):
        if self.connection.in_transaction():
            self.connection.rollback()

    def set_names(self, charset, collation):
        """Match the session character set to a table's, on MySQL only."""
        if self.dialect_name != 'mysql':
            return
        self.connection.execute(
            text(f"SET NAMES '{_quote_literal(charset)}' COLLATE '{_quote_literal(collation)}'")
        )


def _quote_literal(value: str) -> str:
    return value.replace('\\', '\\\\').replace("'", "''")


def get_db_engine():
    """Get database engine with lazy initialization and error handling."""
    global _engine, _connection_status, _connection_error

    if _engine is not None:
        return _engine

    try:
        settings = load_settings()
    except ConfigurationError as e:
        _connection_status = "config_error"
        _connection_error = str(e)
        raise

    try:
        _engine = create_engine(settings.database_url)
        return _engine
    except SQLAlchemyError as e:
        _connection_status = "engine_error"
        _connection_error = str(e)
        raise DatabaseError(f"Failed to create database engine: {e}") from e


def reset_db_engine():
    """Dispose of the cached engine so the next call reconnects with fresh settings."""
    global _engine, _connection_status, _connection_error

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _connection_status = None
    _connection_error = None


@contextmanager
def get_query_executor(engine=None):
    """Open a connection and yield a QueryExecutor for it; any open transaction is rolled back on exit."""
    engine = engine or get_db_engine()
    try:
        connection = engine.connect()
    except SQLAlchemyError as e:
        raise DatabaseError(f"Could not connect to database: {e}") from e

    with connection:
        executor = QueryExecutor(connection)
        try:
            yield executor
        finally:
            executor.rollback()


def test_db_connection():
    """Test database connection and return status."""
    global _connection_status, _connection_error

    try:
        engine = get_db_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        _connection_status = "connected"
        _connection_error = None
        console.print("✅ Database connection successful!", style="bold green")
        return True, None
    except (ConfigurationError, DatabaseError, SQLAlchemyError) as e:
        _connection_status = "failed"
        _connection_error = str(e)
        console.print(f"❌ Database connection failed: {e}", style="bold red")
        return False, str(e)


# pytest would otherwise collect this as a test
test_db_connection.__test__ = False


def get_connection_status():
    """Get current database connection status without attempting connection."""
    return _connection_status, _connection_error


def check_db_connection_with_friendly_error():
    """Check database connection and display user-friendly error messages."""
    config_valid, config_error = validate_db_config()
    if not config_valid:
        console.print("❌ Database Configuration Error", style="bold red")
        console.print(f"   {config_error}", style="red")
        console.print("   Please check your .env file and ensure all database credentials are set.", style="yellow")
        return False

    success, error = test_db_connection()
    if success:
        return True

    console.print("❌ Database Connection Error", style="bold red")

    if "nodename nor servname provided" in error or "Name or service not known" in error:
        console.print("   Cannot resolve database hostname. Please check:", style="red")
        console.print(f"   - DB_HOST is correct: {os.getenv('DB_HOST')}", style="yellow")
        console.print("   - Network connectivity to the database server", style="yellow")
    elif "Access denied" in error:
        console.print("   Database authentication failed. Please check:", style="red")
        console.print(f"   - DB_USER: {os.getenv('DB_USER')}", style="yellow")
        console.print("   - DB_PASSWORD is correct", style="yellow")
    elif "Unknown database" in error:
        console.print("   Database does not exist. Please check:", style="red")
        console.print(f"   - DB_NAME: {os.getenv('DB_NAME')}", style="yellow")
    elif "Connection refused" in error:
        console.print("   Cannot connect to database server. Please check:", style="red")
        console.print(f"   - DB_HOST: {os.getenv('DB_HOST')}", style="yellow")
        console.print(f"   - DB_PORT: {os.getenv('DB_PORT', '3306')}", style="yellow")
        console.print("   - Database server is running", style="yellow")
    else:
        console.print(f"   {error}", style="red")

    console.print("\n   💡 Tip: Use 'Test DB Connection' from the main menu to retry", style="cyan")
    return False
