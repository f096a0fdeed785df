"""
Pytest configuration and shared fixtures for grepdb tests
"""

import os
import sys
from pathlib import Path

import pytest

# Add the repository root to the path so grepdb imports without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from grepdb.metadata import ColumnMetadata, TableMetadata  # noqa: E402

DATA_DIR = Path(__file__).parent / 'data'


class FakeExecutor:
    """Query executor double that serves canned rows and records every call"""

    def __init__(self, rows=None, scalar=0, column=None, dialect_name='mysql'):
        self.rows = list(rows or [])
        self.scalar = scalar
        self.column = list(column or [])
        self.dialect_name = dialect_name
        self.queries = []
        self.updates = []
        self.events = []

    def fetch_rows(self, sql, params=None):
        self.queries.append((sql, params))
        self.events.append('select')
        for row in self.rows:
            yield dict(row)

    def fetch_scalar(self, sql, params=None):
        self.queries.append((sql, params))
        return self.scalar

    def fetch_column(self, sql, params=None):
        self.queries.append((sql, params))
        return list(self.column)

    def execute(self, sql, params=None):
        self.updates.append((sql, params))
        self.events.append('update')
        return 1

    def begin(self):
        self.events.append('begin')

    def commit(self):
        self.events.append('commit')

    def rollback(self):
        self.events.append('rollback')

    def set_names(self, charset, collation):
        self.events.append(f'set_names {charset} {collation}')


@pytest.fixture
def data_dir():
    """Directory holding the .sql dump fixtures"""
    return DATA_DIR


@pytest.fixture
def make_column():
    """Factory for ColumnMetadata with sensible defaults"""
    def _make_column(name, column_type='varchar(255)', max_length=255, primary_key=False,
                     nullable=True, indexed=False, table_name='wp_comments', database_name='wp'):
        return ColumnMetadata(
            database_name=database_name,
            table_name=table_name,
            column_name=name,
            type=column_type,
            max_length=max_length,
            primary_key=primary_key,
            nullable=nullable,
            indexed=indexed,
        )
    return _make_column


@pytest.fixture
def comments_table(make_column):
    """wp_comments-like table with an integer primary key and three text columns"""
    return TableMetadata(
        database_name='wp',
        table_name='wp_comments',
        engine='InnoDB',
        collation='utf8mb4_unicode_ci',
        charset='utf8mb4',
        row_count=3,
        columns=[
            make_column('id', 'bigint(20) unsigned', None, primary_key=True, nullable=False, indexed=True),
            make_column('comment', 'varchar(255)', 255),
            make_column('short', 'varchar(10)', 10),
            make_column('meta', 'longtext', None),
        ],
    )


@pytest.fixture
def keyless_table(make_column):
    """Table without a primary key"""
    return TableMetadata(
        database_name='wp',
        table_name='wp_log',
        engine='InnoDB',
        collation='DEFAULT',
        charset='DEFAULT',
        row_count=-1,
        columns=[
            make_column('level', 'int(11)', None, table_name='wp_log'),
            make_column('message', 'text', 65535, table_name='wp_log'),
            make_column('context', 'varchar(64)', 64, table_name='wp_log'),
        ],
    )


@pytest.fixture
def numbers_table(make_column):
    """Table with no string-typed columns"""
    return TableMetadata(
        database_name='wp',
        table_name='wp_numbers',
        engine='InnoDB',
        collation='DEFAULT',
        charset='DEFAULT',
        row_count=10,
        columns=[
            make_column('id', 'int(11)', None, primary_key=True, table_name='wp_numbers'),
            make_column('total', 'decimal(10,2)', None, table_name='wp_numbers'),
        ],
    )


@pytest.fixture
def fake_executor():
    """Factory for FakeExecutor instances"""
    return FakeExecutor


@pytest.fixture
def sample_php_serialized_data():
    """Sample PHP serialized data for testing"""
    return {
        'simple_string': 's:11:"Hello World";',
        'simple_array': 'a:2:{s:4:"name";s:4:"John";s:3:"age";i:30;}',
        'nested_array': 'a:1:{s:7:"widgets";a:2:{i:0;s:11:"Hello World";i:1;b:1;}}',
        'object': 'O:8:"stdClass":2:{s:3:"foo";s:7:"foo bar";s:3:"num";d:1.5;}',
        'boolean_true': 'b:1;',
        'boolean_false': 'b:0;',
        'integer': 'i:42;',
        'null': 'N;',
    }
