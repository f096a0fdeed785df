"""
Field replacement strategies.

Each strategy decides whether it can handle a field value and performs the
substitution, returning a FieldReplaceResult. Strategies are tried in
priority order: serialized data must be handled before plain strings, since
a blind substring replace would leave the length prefixes wrong whenever the
replacement has a different byte length than the search term.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from grepdb import serialized
from grepdb.exceptions import ReplaceError, SerializedDataError
from grepdb.metadata import ColumnMetadata
from grepdb.results import FieldReplaceResult


def _not_found_error(search_term: str, subject: str) -> str:
    return f'Search term "{search_term}" not found in subject "{subject}"'


class FieldReplaceStrategy(ABC):
    """A way of replacing a search term inside a single field value."""

    # The last strategy in a chain may handle subjects nobody else claims
    fallback = False

    @abstractmethod
    def can_replace(self, search_term: str, subject: str) -> bool:
        """Return True if this strategy should handle subject."""

    @abstractmethod
    def replace(
        self,
        column: ColumnMetadata,
        search_term: str,
        replace_term: str,
        subject: str,
    ) -> FieldReplaceResult:
        """Replace search_term with replace_term in subject."""


class SerializedFieldReplaceStrategy(FieldReplaceStrategy):
    """Replaces inside the string leaves of PHP serialized data."""

    def __init__(self, editor=None):
        self.editor = editor or serialized.Editor()

    def can_replace(self, search_term, subject):
        try:
            return self.editor.contains_count(subject, search_term) > 0
        except SerializedDataError:
            return False

    def replace(self, column, search_term, replace_term, subject):
        try:
            match_count = self.editor.contains_count(subject, search_term)
            new_value = self.editor.replace(subject, search_term, replace_term)
        except SerializedDataError:
            return FieldReplaceResult(column, 0, ['Failed to deserialize field'], subject, subject)

        errors = []
        if match_count == 0:
            errors.append(_not_found_error(search_term, subject))

        return FieldReplaceResult(column, match_count, errors, subject, new_value)


class StringFieldReplaceStrategy(FieldReplaceStrategy):
    """
    Case-sensitive literal substring replacement.

    Well-formed serialized data is never claimed here: a blind replace would
    leave its length prefixes wrong.
    """

    fallback = True

    def can_replace(self, search_term, subject):
        return subject.count(search_term) > 0 and not serialized.is_serialized(subject)

    def replace(self, column, search_term, replace_term, subject):
        match_count = subject.count(search_term)
        errors = []
        if match_count == 0:
            errors.append(_not_found_error(search_term, subject))

        return FieldReplaceResult(
            column,
            match_count,
            errors,
            subject,
            subject.replace(search_term, replace_term),
        )


DEFAULT_STRATEGIES = (
    SerializedFieldReplaceStrategy(),
    StringFieldReplaceStrategy(),
)


def select_strategy(strategies: Sequence[FieldReplaceStrategy], search_term: str, subject: str):
    """First strategy that claims subject, or None."""
    for strategy in strategies:
        if strategy.can_replace(search_term, subject):
            return strategy
    return None


def replace_field(
    strategies: Sequence[FieldReplaceStrategy],
    column: ColumnMetadata,
    search_term: str,
    replace_term: str,
    subject: str,
) -> FieldReplaceResult:
    """
    Run subject through the strategy chain.

    A subject no strategy claims (e.g. a case-insensitive match, or a term
    found only in serialized array keys) is left unchanged with a "not found"
    error, provided the chain ends in a fallback strategy.
    """
    strategy = select_strategy(strategies, search_term, subject)
    if strategy is not None:
        return strategy.replace(column, search_term, replace_term, subject)

    if strategies and strategies[-1].fallback:
        return FieldReplaceResult(column, 0, [_not_found_error(search_term, subject)], subject, subject)

    raise ReplaceError(f'No replacement strategy can handle "{search_term}" in subject "{subject}"')
