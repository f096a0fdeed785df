"""Result records produced by search and replace."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional

from grepdb.exceptions import MetadataError
from grepdb.metadata import ColumnMetadata, DatabaseMetadata, TableMetadata


@dataclass(frozen=True)
class FieldSearchResult:
    """A single cell whose value contains the search term."""

    metadata: ColumnMetadata
    value: Any


class RowSearchResult:
    """
    A row with at least one matching field.

    Only matching columns are present in ``fields``. The primary key column and
    value are None when the table has no primary key, in which case an update
    has to match the row on the original values of the changed columns.

    ``primary_key_values`` holds every key column's value; for a compound key
    the single ``primary_key_column`` is only its first column.
    """

    def __init__(
        self,
        table: TableMetadata,
        fields: Iterable[FieldSearchResult],
        primary_key_column: Optional[ColumnMetadata] = None,
        primary_key_value: Any = None,
        primary_key_values: Optional[Mapping[str, Any]] = None,
    ):
        self._table = table
        self._fields = MappingProxyType({result.metadata.column_name: result for result in fields})
        self._primary_key_column = primary_key_column
        self._primary_key_value = primary_key_value
        if primary_key_values is None:
            primary_key_values = {}
            if primary_key_column is not None:
                primary_key_values[primary_key_column.column_name] = primary_key_value
        self._primary_key_values = MappingProxyType(dict(primary_key_values))

    @property
    def table(self) -> TableMetadata:
        return self._table

    @property
    def fields(self) -> Mapping[str, FieldSearchResult]:
        return self._fields

    @property
    def primary_key_column(self) -> Optional[ColumnMetadata]:
        return self._primary_key_column

    @property
    def primary_key_value(self) -> Any:
        return self._primary_key_value

    @property
    def primary_key_values(self) -> Mapping[str, Any]:
        return self._primary_key_values

    def has_primary_key(self) -> bool:
        return self._primary_key_column is not None

    def has_column_result(self, column_name: str) -> bool:
        return column_name in self._fields

    def get_column_result(self, column_name: str) -> FieldSearchResult:
        if column_name not in self._fields:
            raise MetadataError(f'Could not find changed column named "{column_name}"')
        return self._fields[column_name]

    def __repr__(self):
        return (
            f"RowSearchResult({self._table.table_name!r}, fields={list(self._fields)!r}, "
            f"primary_key_value={self._primary_key_value!r})"
        )


@dataclass(frozen=True)
class FieldReplaceResult:
    """Outcome of running one field through the replacement strategy chain."""

    metadata: ColumnMetadata
    replaced_count: int
    errors: List[str]
    old_value: Any
    new_value: Any

    @property
    def changed(self) -> bool:
        return self.replaced_count > 0 and self.old_value != self.new_value


@dataclass
class RowReplaceResult:
    """Outcome of replacing in one row; errors holds row-level problems such as overflow."""

    row: RowSearchResult
    field_results: List[FieldReplaceResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    updated_columns: List[str] = field(default_factory=list)

    @property
    def table(self) -> TableMetadata:
        return self.row.table

    @property
    def replaced_count(self) -> int:
        return sum(result.replaced_count for result in self.field_results)

    def all_errors(self) -> List[str]:
        """Row errors followed by every field error."""
        errors = list(self.errors)
        for result in self.field_results:
            errors.extend(result.errors)
        return errors


@dataclass(frozen=True)
class TableReplaceResult:
    """Running totals for a table, reported at every batch boundary and on completion."""

    table: TableMetadata
    rows_replaced_count: int
    columns_replaced_count: int
    errors: List[str]
    complete: bool


@dataclass
class DatabaseReplaceResult:
    """Aggregate of the table results for a database."""

    database: DatabaseMetadata
    table_results: dict = field(default_factory=dict)
    complete: bool = False

    def add(self, table_result: TableReplaceResult):
        self.table_results[table_result.table.table_name] = table_result

    @property
    def table_count(self) -> int:
        return len(self.table_results)

    @property
    def rows_replaced_count(self) -> int:
        return sum(result.rows_replaced_count for result in self.table_results.values())

    @property
    def columns_replaced_count(self) -> int:
        return sum(result.columns_replaced_count for result in self.table_results.values())

    @property
    def errors(self) -> List[str]:
        errors = []
        for result in self.table_results.values():
            errors.extend(result.errors)
        return errors
