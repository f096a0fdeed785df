"""
Search and replace across tables.

Rows are replaced as the search produces them, one UPDATE per changed row,
inside a transaction that is committed every ``batch_size`` rows and once
more when the table is finished. A caller that stops iterating part way
through a table leaves the current batch uncommitted and is responsible for
rolling it back.
"""

from typing import Callable, Iterator, Optional, Sequence

from grepdb.config import DEFAULT_BATCH_SIZE
from grepdb.metadata import DatabaseMetadata, TableMetadata
from grepdb.results import DatabaseReplaceResult, RowReplaceResult, RowSearchResult, TableReplaceResult
from grepdb.search import Search, as_text, check_search_term, qualified_table_name, quote_identifier, selected_tables
from grepdb.strategies import DEFAULT_STRATEGIES, FieldReplaceStrategy, replace_field

ProgressCallback = Callable[[TableReplaceResult], None]

# Charset/collation values that don't name a concrete setting
_UNSET_OPTIONS = (None, '', 'DEFAULT')


def _byte_length(value) -> int:
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    return len(value.encode('utf-8', 'surrogateescape'))


def _restore_type(new_value: str, original):
    """Give new_value the type (str or bytes) the driver handed us for the original."""
    if isinstance(original, (bytes, bytearray)):
        return new_value.encode('utf-8', 'surrogateescape')
    return new_value


def _overflow_error(row: RowSearchResult, column_name, length, max_length, original) -> str:
    if len(row.primary_key_values) > 1:
        key = ', '.join(f'{name}={value}' for name, value in row.primary_key_values.items())
        location = f'row with primary key "{key}"'
    elif row.has_primary_key():
        location = f'row with primary key "{row.primary_key_value}"'
    else:
        location = f'row with original value "{as_text(original)}"'
    return (
        f'Error: Replacement for column "{column_name}" in {location} of table "{row.table.table_name}" '
        f'is {length} bytes, exceeding the maximum length of {max_length}; column left unchanged'
    )


class Replace:
    """Replace a search term in every matching field, writing the results back through a query executor."""

    def __init__(
        self,
        executor,
        strategies: Sequence[FieldReplaceStrategy] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        search: Search = None,
    ):
        if batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        self.executor = executor
        self.strategies = tuple(strategies) if strategies else DEFAULT_STRATEGIES
        self.batch_size = batch_size
        self.search = search or Search(executor)

    def replace_row(self, row: RowSearchResult, search_term: str, replace_term: str) -> RowReplaceResult:
        """Run each matching field of row through the strategy chain; nothing is written."""
        result = RowReplaceResult(row)

        for column_name, field_result in row.fields.items():
            column = field_result.metadata
            replaced = replace_field(self.strategies, column, search_term, replace_term, as_text(field_result.value))
            result.field_results.append(replaced)

            if not replaced.changed:
                continue

            length = _byte_length(replaced.new_value)
            if column.max_length is not None and length > column.max_length:
                result.errors.append(
                    _overflow_error(row, column_name, length, column.max_length, field_result.value)
                )
                continue

            result.updated_columns.append(column_name)

        return result

    def build_update(self, result: RowReplaceResult):
        """
        UPDATE statement and parameters for the changed columns of a row.

        Rows are matched on every column of their primary key when the table
        has one, otherwise on the original values of every changed column. Without a primary key,
        duplicate rows that share those values are all updated together.
        """
        row = result.row
        new_values = {replaced.metadata.column_name: replaced.new_value for replaced in result.field_results}

        assignments = []
        params = {}
        for index, column_name in enumerate(result.updated_columns):
            original = row.get_column_result(column_name).value
            assignments.append(f"{quote_identifier(column_name)} = :value_{index}")
            params[f"value_{index}"] = _restore_type(new_values[column_name], original)

        if len(row.primary_key_values) > 1:
            conditions = []
            for index, (column_name, value) in enumerate(row.primary_key_values.items()):
                conditions.append(f"{quote_identifier(column_name)} = :primary_key_{index}")
                params[f"primary_key_{index}"] = value
        elif row.has_primary_key():
            conditions = [f"{quote_identifier(row.primary_key_column.column_name)} = :primary_key"]
            params['primary_key'] = row.primary_key_value
        else:
            conditions = []
            for index, column_name in enumerate(result.updated_columns):
                conditions.append(f"{quote_identifier(column_name)} = :where_{index}")
                params[f"where_{index}"] = row.get_column_result(column_name).value

        sql = (
            f"UPDATE {qualified_table_name(row.table)} "
            f"SET {', '.join(assignments)} "
            f"WHERE {' AND '.join(conditions)}"
        )
        return sql, params

    def replace_table(
        self,
        table: TableMetadata,
        search_term: str,
        replace_term: str,
        progress: Optional[ProgressCallback] = None,
        dry_run: bool = False,
    ) -> Iterator[RowReplaceResult]:
        """
        Lazily replace search_term with replace_term in table, yielding one result per matching row.

        progress receives running TableReplaceResult totals after every committed
        batch and once more, with complete=True, when the table is finished. With
        dry_run no UPDATE is issued and every batch is rolled back.
        """
        check_search_term(search_term)
        return self._replace_table(table, search_term, replace_term, progress, dry_run)

    def _replace_table(self, table, search_term, replace_term, progress, dry_run):
        if table.charset not in _UNSET_OPTIONS and table.collation not in _UNSET_OPTIONS:
            self.executor.set_names(table.charset, table.collation)

        self.executor.begin()

        row_count = 0
        column_count = 0
        errors = []

        for row in self.search.search_table(table, search_term):
            result = self.replace_row(row, search_term, replace_term)
            row_count += 1
            column_count += len(result.updated_columns)
            errors.extend(result.all_errors())

            if result.updated_columns and not dry_run:
                sql, params = self.build_update(result)
                self.executor.execute(sql, params)

            if row_count % self.batch_size == 0:
                self._end_batch(dry_run)
                self.executor.begin()
                if progress is not None:
                    progress(TableReplaceResult(table, row_count, column_count, list(errors), False))

            yield result

        # A batch is always open here, even if empty after a boundary commit
        self._end_batch(dry_run)

        if progress is not None:
            progress(TableReplaceResult(table, row_count, column_count, list(errors), True))

    def _end_batch(self, dry_run):
        if dry_run:
            self.executor.rollback()
        else:
            self.executor.commit()

    def replace_database(
        self,
        database: DatabaseMetadata,
        search_term: str,
        replace_term: str,
        table_names: Sequence[str] = None,
        progress: Optional[ProgressCallback] = None,
        dry_run: bool = False,
    ) -> Iterator[RowReplaceResult]:
        """Replace table by table across a database (or just table_names)."""
        check_search_term(search_term)
        return self._replace_database(database, search_term, replace_term, table_names, progress, dry_run)

    def _replace_database(self, database, search_term, replace_term, table_names, progress, dry_run):
        for table in selected_tables(database, table_names):
            if not table.has_string_type_column():
                continue
            yield from self._replace_table(table, search_term, replace_term, progress, dry_run)

    def replace_database_summary(
        self,
        database: DatabaseMetadata,
        search_term: str,
        replace_term: str,
        table_names: Sequence[str] = None,
        dry_run: bool = False,
    ) -> DatabaseReplaceResult:
        """Run replace_database to completion and return the per-table totals."""
        summary = DatabaseReplaceResult(database)

        def record(table_result):
            if table_result.complete:
                summary.add(table_result)

        for _ in self.replace_database(database, search_term, replace_term, table_names, record, dry_run):
            pass

        summary.complete = True
        return summary
