"""Extract table metadata from the CREATE TABLE statements of a mysqldump file."""

from typing import Iterable, Iterator, List

from grepdb.exceptions import ParserError
from grepdb.metadata import ColumnMetadata, TableMetadata
from grepdb.sql_tokenizer import Token, TokenBundle, Tokenizer, TokenType

DEFAULT_OPTION = 'DEFAULT'
TEXT_MAX_LENGTH = 65535

# Table definition lines that declare an index rather than a column
INDEX_KEYWORDS = ('PRIMARY', 'UNIQUE', 'KEY', 'INDEX', 'FULLTEXT')


class Parser:
    """Turns CREATE TABLE token bundles into TableMetadata."""

    def __init__(self, tokenizer: Tokenizer = None):
        self.tokenizer = tokenizer or Tokenizer()

    def parse_all_table_metadata(self, file_path, database_name: str = None) -> Iterator[TableMetadata]:
        """
        Lazily parse every table definition in the dump at file_path, in source order.

        Dumps don't reliably name their database, so the file path is used as
        the database name unless one is given. A missing file raises
        TokenizerError immediately.
        """
        bundles = self.tokenizer.tokenize(file_path)
        return self._parse_bundles(bundles, database_name or str(file_path))

    def _parse_bundles(self, bundles: Iterable[TokenBundle], database_name: str) -> Iterator[TableMetadata]:
        for bundle in bundles:
            if is_create_table(bundle):
                yield self.parse_table_metadata(bundle, database_name)

    def parse_table_metadata(self, bundle: TokenBundle, database_name: str) -> TableMetadata:
        tokens = bundle.tokens

        name_offset = 2
        # CREATE TABLE IF NOT EXISTS `name`
        if tokens[name_offset].matches(TokenType.KEYWORD, 'IF'):
            name_offset += 3
        if name_offset >= len(tokens) or tokens[name_offset].type != TokenType.QUOTED_IDENTIFIER:
            raise ParserError(f'Could not find table name in statement "{bundle.raw_data[:80]}"')
        table_name = tokens[name_offset].value

        open_offset = name_offset + 1
        if open_offset >= len(tokens) or tokens[open_offset].type != TokenType.PARENTHESIS_OPEN:
            raise ParserError(f'Table "{table_name}" has no column definitions')
        close_offset = _last_close_offset(tokens)
        if close_offset is None or close_offset <= open_offset:
            raise ParserError(f'Table "{table_name}" column definitions are not terminated')

        options = _table_options(tokens[close_offset + 1:])
        groups = _split_definitions(tokens[open_offset + 1:close_offset])

        primary_keys = set()
        indexed = set()
        column_groups = []
        for group in groups:
            first = group[0]
            if first.matches(TokenType.KEYWORD, 'PRIMARY'):
                primary_keys.update(_parenthesized_identifiers(group))
            elif first.type == TokenType.KEYWORD and first.value in INDEX_KEYWORDS:
                indexed.update(_parenthesized_identifiers(group))
            elif first.type == TokenType.QUOTED_IDENTIFIER:
                column_groups.append(group)

        columns = [
            _column_metadata(database_name, table_name, group, primary_keys, indexed)
            for group in column_groups
        ]

        return TableMetadata(
            database_name=database_name,
            table_name=table_name,
            engine=options.get('ENGINE', DEFAULT_OPTION),
            collation=options.get('COLLATE', options.get('COLLATION', DEFAULT_OPTION)),
            charset=options.get('CHARSET', DEFAULT_OPTION),
            row_count=-1,
            columns=columns,
        )


def is_create_table(bundle: TokenBundle) -> bool:
    tokens = bundle.tokens
    return (
        len(tokens) > 2
        and tokens[0].matches(TokenType.KEYWORD, 'CREATE')
        and tokens[1].matches(TokenType.KEYWORD, 'TABLE')
    )


def _last_close_offset(tokens: List[Token]):
    for offset in range(len(tokens) - 1, -1, -1):
        if tokens[offset].type == TokenType.PARENTHESIS_CLOSE:
            return offset
    return None


def _table_options(tokens: List[Token]) -> dict:
    options = {}
    for token in tokens:
        if token.type == TokenType.KEY_VALUE:
            key, value = token.value.split('=', 1)
            options[key.strip().upper()] = value.strip()
    return options


def _split_definitions(tokens: List[Token]) -> List[List[Token]]:
    """Split the body of a CREATE TABLE into one token group per line, on top-level commas."""
    groups = []
    current = []
    depth = 0
    for token in tokens:
        if token.type == TokenType.PARENTHESIS_OPEN:
            depth += 1
        elif token.type == TokenType.PARENTHESIS_CLOSE:
            depth -= 1
        elif token.type == TokenType.COMMA_SEPARATOR and depth == 0:
            if current:
                groups.append(current)
            current = []
            continue
        current.append(token)
    if current:
        groups.append(current)
    return groups


def _parenthesized_identifiers(group: List[Token]) -> List[str]:
    """Column names in the first parenthesized list of an index definition."""
    names = []
    depth = 0
    for token in group:
        if token.type == TokenType.PARENTHESIS_OPEN:
            depth += 1
        elif token.type == TokenType.PARENTHESIS_CLOSE:
            depth -= 1
            if depth == 0:
                break
        elif depth == 1 and token.type == TokenType.QUOTED_IDENTIFIER:
            names.append(token.value)
    return names


def _max_length(column_type: str):
    base, _, rest = column_type.partition('(')
    base = base.strip().upper()
    if base in ('VARCHAR', 'CHAR') and rest:
        length = rest.split(')')[0].strip()
        if length.isdigit():
            return int(length)
    if base in ('TEXT', 'BLOB'):
        return TEXT_MAX_LENGTH
    return None


def _is_not_null(group: List[Token]) -> bool:
    modifiers = group[2:]
    for current, following in zip(modifiers, modifiers[1:]):
        if current.matches(TokenType.KEYWORD, 'NOT') and following.matches(TokenType.KEYWORD, 'NULL'):
            return True
    return False


def _column_metadata(database_name, table_name, group, primary_keys, indexed) -> ColumnMetadata:
    column_name = group[0].value
    if len(group) < 2 or group[1].type != TokenType.DATA_TYPE:
        raise ParserError(f'Column "{column_name}" of table "{table_name}" has no data type')
    column_type = group[1].value

    return ColumnMetadata(
        database_name=database_name,
        table_name=table_name,
        column_name=column_name,
        type=column_type,
        max_length=_max_length(column_type),
        primary_key=column_name in primary_keys,
        nullable=not _is_not_null(group),
        indexed=column_name in indexed or column_name in primary_keys,
    )
