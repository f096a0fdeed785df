"""Entry point tying metadata, search and replace to one database connection."""

from contextlib import contextmanager

from sqlalchemy import create_engine

from grepdb import db_utils
from grepdb.config import DEFAULT_BATCH_SIZE, load_settings
from grepdb.metadata_factory import ConnectionMetadataFactory
from grepdb.replace import Replace
from grepdb.search import Search


class GrepDb:
    """
    Search, or search and replace, on the database behind a QueryExecutor.

    Metadata is read fresh from information_schema on every call.
    """

    def __init__(self, executor, database_name, host=None, batch_size=DEFAULT_BATCH_SIZE, strategies=None):
        self.executor = executor
        self.database_name = database_name
        self.metadata_factory = ConnectionMetadataFactory(executor, database_name, host)
        self.searcher = Search(executor)
        self.replacer = Replace(executor, strategies=strategies, batch_size=batch_size, search=self.searcher)

    def list_tables(self):
        return self.metadata_factory.list_tables()

    def get_database_metadata(self, table_names=None):
        return self.metadata_factory.get_database_metadata(table_names=table_names)

    def get_table_metadata(self, table_name):
        return self.metadata_factory.get_table_metadata(table_name)

    def get_server_metadata(self):
        return self.metadata_factory.get_server_metadata()

    def count_table(self, table_name, search_term):
        return self.searcher.count_table(self.get_table_metadata(table_name), search_term)

    def search_table(self, table_name, search_term):
        return self.searcher.search_table(self.get_table_metadata(table_name), search_term)

    def search_database(self, search_term, table_names=None):
        database = self.get_database_metadata(table_names)
        return self.searcher.search_database(database, search_term)

    def search_server(self, search_term):
        return self.searcher.search_server(self.get_server_metadata(), search_term)

    def replace_table(self, table_name, search_term, replace_term, progress=None, dry_run=False):
        table = self.get_table_metadata(table_name)
        return self.replacer.replace_table(table, search_term, replace_term, progress, dry_run)

    def replace_database(self, search_term, replace_term, table_names=None, progress=None, dry_run=False):
        database = self.get_database_metadata(table_names)
        return self.replacer.replace_database(database, search_term, replace_term, progress=progress, dry_run=dry_run)


@contextmanager
def connect(settings=None):
    """
    Yield a GrepDb bound to a fresh connection.

    Without settings the shared engine configured from the environment is
    used; explicit settings get an engine of their own, disposed on exit.
    """
    if settings is None:
        settings = load_settings()
        with db_utils.get_query_executor() as executor:
            yield GrepDb(executor, settings.db_name, host=settings.db_host, batch_size=settings.batch_size)
        return

    engine = create_engine(settings.database_url)
    try:
        with db_utils.get_query_executor(engine) as executor:
            yield GrepDb(executor, settings.db_name, host=settings.db_host, batch_size=settings.batch_size)
    finally:
        engine.dispose()
