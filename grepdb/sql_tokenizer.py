"""
Tokenizer for mysqldump files.

Only the structural parts of a dump are tokenized: comments and whitespace
are stripped, and each statement (or skipped comment) is returned as a
TokenBundle holding the verbatim source text plus its tokens. The file is
read one character at a time, so memory use is bounded by the largest
single statement rather than by the size of the dump.
"""

import re
from enum import Enum
from typing import Iterator, List, NamedTuple, Optional

from grepdb.exceptions import TokenizerError

DEFAULT_DELIMITER = ';'

KEYWORDS = frozenset([
    '_BINARY',
    'AUTO_INCREMENT',
    'ACTION',
    'BTREE',
    'CASCADE',
    'CHARACTER',
    'CHARSET',
    'COLLATE',
    'COLLATION',
    'COMMENT',
    'CREATE',
    'CURRENT_TIMESTAMP',
    'CONSTRAINT',
    'DATABASE',
    'DEFAULT',
    'DELETE',
    'DELIMITER',
    'DROP',
    'EXISTS',
    'FOREIGN',
    'FULLTEXT',
    'HASH',
    'IF',
    'INDEX',
    'INSERT',
    'INTO',
    'KEY',
    'LOCK',
    'NO',
    'NOT',
    'NULL',
    'ON',
    'PRIMARY',
    'REFERENCES',
    'RESTRICT',
    'TABLE',
    'TABLES',
    'UNIQUE',
    'UNLOCK',
    'UNSIGNED',
    'UPDATE',
    'USE',
    'USING',
    'VALUES',
    'WRITE',
    'ZEROFILL',
])

DATA_TYPES = frozenset([
    'BIT',
    'TINYINT',
    'BOOL',
    'BOOLEAN',
    'SMALLINT',
    'MEDIUMINT',
    'INT',
    'BIGINT',
    'DECIMAL',
    'FLOAT',
    'DATE',
    'DATETIME',
    'TIMESTAMP',
    'TIME',
    'YEAR',
    'CHAR',
    'VARCHAR',
    'BINARY',
    'VARBINARY',
    'TINYBLOB',
    'TINYTEXT',
    'BLOB',
    'TEXT',
    'MEDIUMBLOB',
    'MEDIUMTEXT',
    'LONGBLOB',
    'LONGTEXT',
    'ENUM',
    'SET',
    'DOUBLE',
    'JSON',
])

VARIABLE_TYPES = frozenset(['GLOBAL', 'LOCAL', 'SESSION'])

QUOTES = ('"', "'")

# Prefixes that turn a quoted string into a bit or hex literal, e.g. b'0'
LITERAL_PREFIXES = ('b', 'B', 'x', 'X')

_NUMBER_RE = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')


class TokenType(Enum):
    KEYWORD = 'keyword'
    QUOTED_IDENTIFIER = 'quoted-identifier'
    PARENTHESIS_OPEN = 'open-parenthesis'
    PARENTHESIS_CLOSE = 'close-parenthesis'
    DATA_TYPE = 'data-type'
    COMMA_SEPARATOR = 'comma-separator'
    KEY_VALUE = 'key-value'
    VALUE_NUMBER = 'value-number'
    VALUE_STRING = 'value-string'
    VALUE_NULL = 'value-null'
    COLLATION = 'collation'
    CHARSET = 'charset'
    VARIABLE = 'variable'
    VARIABLE_TYPE = 'variable-type'
    VARIABLE_ASSIGNMENT = 'variable-assignment'


class Token(NamedTuple):
    type: TokenType
    value: str

    def matches(self, token_type: TokenType, value: Optional[str] = None) -> bool:
        return self.type == token_type and (value is None or self.value == value)


COMMA = Token(TokenType.COMMA_SEPARATOR, ',')
OPEN = Token(TokenType.PARENTHESIS_OPEN, '(')
CLOSE = Token(TokenType.PARENTHESIS_CLOSE, ')')


class TokenBundle:
    """Verbatim source text of one statement or comment, plus its tokens (empty for comments)."""

    def __init__(self, raw_data: str, tokens: Optional[List[Token]] = None):
        self.raw_data = raw_data
        self.tokens = tokens or []

    def has_tokens(self) -> bool:
        return len(self.tokens) > 0

    def __str__(self):
        return self.raw_data

    def __repr__(self):
        return f"TokenBundle({self.raw_data[:40]!r}, tokens={len(self.tokens)})"


class FileReader:
    """Hands out a file one character at a time, reading it a line at a time."""

    def __init__(self, file_path):
        self.file_path = file_path
        try:
            # Universal newlines: \r\n dumps read the same as \n dumps
            self._handle = open(file_path, 'r', encoding='utf-8', errors='surrogateescape')
        except OSError as e:
            raise TokenizerError(f'Could not open SQL file "{file_path}"') from e
        self._line = ''
        self._index = 0
        self._complete = False

    def read_char(self) -> str:
        """Next character, or an empty string once the file is exhausted."""
        if self._complete:
            return ''

        if self._index >= len(self._line):
            self._line = self._handle.readline()
            self._index = 0
            if not self._line:
                self._complete = True
                self.close()
                return ''

        char = self._line[self._index]
        self._index += 1
        return char

    def close(self):
        self._handle.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


class _Scan:
    """Per-call tokenizer state: the reader, raw text of the current bundle and the active delimiter."""

    def __init__(self, reader: FileReader, delimiter: str):
        self.reader = reader
        self.delimiter = delimiter
        self._raw = []
        self._pending = []

    def read(self) -> str:
        char = self._pending.pop() if self._pending else self.reader.read_char()
        if char:
            self._raw.append(char)
        return char

    def unread(self, char: str):
        if char:
            self._raw.pop()
            self._pending.append(char)

    def take_raw(self) -> str:
        raw = ''.join(self._raw)
        self._raw = []
        return raw


class Tokenizer:
    """Tokenizes a mysqldump file into TokenBundles."""

    def __init__(self, delimiter: str = DEFAULT_DELIMITER):
        self.delimiter = delimiter

    def tokenize(self, file_path) -> Iterator[TokenBundle]:
        """
        Lazily tokenize the SQL file at file_path.

        The file is opened immediately, so a missing file raises TokenizerError
        here rather than on the first iteration.
        """
        reader = FileReader(file_path)
        return self._tokenize(reader)

    def _tokenize(self, reader: FileReader) -> Iterator[TokenBundle]:
        scan = _Scan(reader, self.delimiter)
        accumulator = ''

        with reader:
            while True:
                char = scan.read()
                if not char:
                    break

                # Ignore leading whitespace between statements
                if accumulator or not char.isspace():
                    accumulator += char

                # Single-line comment at the start of a line
                if accumulator in ('--', '#'):
                    self._skip_to_end_of_line(scan)
                    yield TokenBundle(scan.take_raw())
                    accumulator = ''

                # Multi-line comment at the start of a line
                elif accumulator == '/*':
                    self._skip_comment(scan, skip_delimiter=True)
                    yield TokenBundle(scan.take_raw())
                    accumulator = ''

                # Not a comment and we have data; we're in a statement
                elif len(accumulator) > 2:
                    yield self._parse_statement(scan, accumulator)
                    accumulator = ''

    def _parse_statement(self, scan: _Scan, accumulator: str) -> TokenBundle:
        tokens = []

        while True:
            char = scan.read()
            if not char:
                if accumulator.strip():
                    tokens.extend(self._parse_word(accumulator))
                break

            # Delimiter, end of statement
            if (accumulator + char).endswith(scan.delimiter):
                statement = (accumulator + char)[:-len(scan.delimiter)]
                if statement.strip():
                    tokens.extend(self._parse_word(statement.strip()))
                break

            # End of a keyword, data type or key-value pair
            if char.isspace():
                if not accumulator:
                    continue

                if accumulator == ',':
                    tokens.append(COMMA)
                elif accumulator.upper() == 'SET' and not tokens:
                    tokens.extend(self._parse_variable_assignment(scan))
                    break
                elif accumulator.upper() == 'DELIMITER' and not tokens:
                    tokens.extend(self._parse_delimiter(scan, char))
                    break
                else:
                    tokens.extend(self._parse_word(accumulator))
                    last = tokens[-1]

                    # CHARACTER SET names a charset; it is not the SET data type
                    if (
                        last.type == TokenType.DATA_TYPE
                        and last.value.upper() == 'SET'
                        and len(tokens) > 1
                        and tokens[-2].matches(TokenType.KEYWORD, 'CHARACTER')
                    ):
                        tokens[-1] = Token(TokenType.KEYWORD, 'SET')
                        tokens.extend(self._read_name(scan, TokenType.CHARSET))
                    elif last.matches(TokenType.KEYWORD, 'CHARSET'):
                        tokens.extend(self._read_name(scan, TokenType.CHARSET))

                    # COLLATE is always followed by a collation name
                    elif last.type == TokenType.KEYWORD and last.value in ('COLLATE', 'COLLATION'):
                        tokens.extend(self._read_name(scan, TokenType.COLLATION))
                accumulator = ''
                continue

            # Inline comment inside a statement
            if accumulator == '/' and char == '*':
                self._skip_comment(scan, skip_delimiter=False)
                accumulator = ''
                continue

            if not accumulator:
                # NULL value in an INSERT statement
                if char == 'N' and tokens and tokens[0].matches(TokenType.KEYWORD, 'INSERT'):
                    tokens.append(self._read_null(scan))

                # Numerical value (e.g. in an INSERT statement)
                elif char.isdigit() or char == '-':
                    tokens.extend(self._read_number(scan, char))

                # String value (e.g. in an INSERT statement)
                elif char in QUOTES:
                    tokens.append(Token(TokenType.VALUE_STRING, self._read_quoted_string(scan, char)))

                elif char == '`':
                    tokens.append(self._read_quoted_identifier(scan))

                elif char == ',':
                    tokens.append(COMMA)

                elif char == '(':
                    tokens.append(OPEN)

                elif char == ')':
                    tokens.append(CLOSE)

                else:
                    accumulator = char
                continue

            # Identifier directly after a word fragment (e.g. `db`.`table`)
            if char == '`':
                if accumulator != '.':
                    tokens.extend(self._parse_word(accumulator))
                tokens.append(self._read_quoted_identifier(scan))
                accumulator = ''

            # Word ended by a close parenthesis or comma, outside of its own parentheses
            elif char in '),' and _balanced(accumulator):
                tokens.extend(self._parse_word(accumulator))
                tokens.append(CLOSE if char == ')' else COMMA)
                accumulator = ''

            # Bit or hex literal, e.g. DEFAULT b'0'
            elif char in QUOTES and accumulator in LITERAL_PREFIXES:
                tokens.append(Token(
                    TokenType.VALUE_STRING, accumulator + char + self._read_quoted_string(scan, char) + char
                ))
                accumulator = ''

            # Quoted part of a word, e.g. enum('a b','c')
            elif char in QUOTES:
                accumulator += char + self._read_quoted_string(scan, char) + char

            else:
                accumulator += char

        return TokenBundle(scan.take_raw(), tokens)

    def _read_null(self, scan: _Scan) -> Token:
        value = 'N' + scan.read() + scan.read() + scan.read()
        if value != 'NULL':
            raise TokenizerError(
                f'Expected NULL in INSERT values but found "{value}"; the dump may use syntax that is not supported'
            )
        return Token(TokenType.VALUE_NULL, 'NULL')

    def _read_name(self, scan: _Scan, token_type: TokenType) -> List[Token]:
        """Read the collation or charset name that follows a COLLATE, CHARSET or CHARACTER SET keyword."""
        tokens = []
        accumulator = ''
        while True:
            char = scan.read()
            if not char:
                break
            if char.isspace() and not accumulator:
                continue
            if char == ',':
                tokens.append(Token(token_type, accumulator))
                tokens.append(COMMA)
                return tokens
            if char == ')':
                tokens.append(Token(token_type, accumulator))
                tokens.append(CLOSE)
                return tokens
            if char.isspace() or char == scan.delimiter[0]:
                scan.unread(char)
                break
            accumulator += char

        tokens.append(Token(token_type, accumulator))
        return tokens

    def _read_quoted_string(self, scan: _Scan, quote: str) -> str:
        """Read until the matching unescaped closing quote; the value is returned still escaped."""
        value = []
        escaped = False
        while True:
            char = scan.read()
            if not char:
                break
            if escaped:
                value.append(char)
                escaped = False
            elif char == '\\':
                value.append(char)
                escaped = True
            elif char == quote:
                following = scan.read()
                if following == quote:
                    # SQL-style doubled quote
                    value.append(char + following)
                    continue
                scan.unread(following)
                break
            else:
                value.append(char)
        return ''.join(value)

    def _read_number(self, scan: _Scan, first: str) -> List[Token]:
        """Read an integer or float literal."""
        accumulator = first
        while True:
            char = scan.read()
            if not char:
                return [Token(TokenType.VALUE_NUMBER, accumulator)]
            if char == ',':
                return [Token(TokenType.VALUE_NUMBER, accumulator), COMMA]
            if char == ')':
                return [Token(TokenType.VALUE_NUMBER, accumulator), CLOSE]
            if char.isspace() or char == scan.delimiter[0]:
                scan.unread(char)
                return [Token(TokenType.VALUE_NUMBER, accumulator)]
            accumulator += char

    def _read_quoted_identifier(self, scan: _Scan) -> Token:
        """Read a backtick-quoted table or column name; a doubled backtick is an escaped backtick."""
        name = []
        while True:
            char = scan.read()
            if not char:
                break
            if char == '`':
                following = scan.read()
                if following == '`':
                    name.append('`')
                    continue
                scan.unread(following)
                break
            name.append(char)
        return Token(TokenType.QUOTED_IDENTIFIER, ''.join(name))

    def _parse_word(self, word: str) -> List[Token]:
        """Classify a whitespace-delimited word as data type, key-value pair or keyword."""
        tokens = []

        if word.startswith(','):
            tokens.append(COMMA)
            word = word[1:]

        trailing_comma = word.endswith(',')
        if trailing_comma:
            word = word[:-1]

        if word:
            if _is_data_type(word):
                tokens.append(Token(TokenType.DATA_TYPE, word))
            elif _is_key_value(word):
                tokens.append(Token(TokenType.KEY_VALUE, word))
            else:
                tokens.append(_keyword_token(word))

        if trailing_comma:
            tokens.append(COMMA)

        return tokens

    def _parse_variable_assignment(self, scan: _Scan) -> List[Token]:
        """
        Parse a SET statement into variable, assignment and value tokens.

        Handles the forms mysqldump writes (SET NAMES x, SET @a=@@b, c=0), not arbitrary SET statements.
        """
        tokens = [Token(TokenType.KEYWORD, 'SET')]
        accumulator = ''

        while True:
            char = scan.read()
            if not char:
                break

            if (accumulator + char).endswith(scan.delimiter):
                accumulator = (accumulator + char)[:-len(scan.delimiter)]
                if accumulator.strip():
                    tokens.append(_variable_component(accumulator.strip()))
                break

            if char.isspace():
                if accumulator:
                    tokens.append(_variable_component(accumulator))
                    accumulator = ''
            elif char == ',':
                if accumulator:
                    tokens.append(_variable_component(accumulator))
                    accumulator = ''
                tokens.append(COMMA)
            elif char == '=':
                if accumulator:
                    tokens.append(_variable_component(accumulator))
                    accumulator = ''
                tokens.append(Token(TokenType.VARIABLE_ASSIGNMENT, '='))
            elif char in QUOTES and not accumulator:
                tokens.append(Token(TokenType.VALUE_STRING, self._read_quoted_string(scan, char)))
            else:
                accumulator += char

        return tokens

    def _parse_delimiter(self, scan: _Scan, char: str) -> List[Token]:
        """Read the new delimiter from a DELIMITER statement and make it active."""
        delimiter = ''
        while char and char != '\n':
            char = scan.read()
            if char and char != '\n':
                delimiter += char

        delimiter = delimiter.strip()
        if not delimiter:
            raise TokenizerError('DELIMITER statement without a delimiter')

        scan.delimiter = delimiter
        return [Token(TokenType.KEYWORD, 'DELIMITER'), Token(TokenType.VALUE_STRING, delimiter)]

    def _skip_to_end_of_line(self, scan: _Scan):
        while True:
            char = scan.read()
            if not char or char == '\n':
                break

    def _skip_comment(self, scan: _Scan, skip_delimiter: bool):
        """
        Move past the closing */ of a multi-line comment.

        Executable comments (/*! ... */) and optimizer hints (/*+ ... */) at the
        top level are terminated by a delimiter, which is skipped as well.
        """
        first = scan.read()
        expect_delimiter = first in ('!', '+')

        previous = first
        while previous:
            char = scan.read()
            if not char or (previous == '*' and char == '/'):
                break
            previous = char

        if expect_delimiter and skip_delimiter:
            read = []
            for _ in scan.delimiter:
                char = scan.read()
                if not char:
                    break
                read.append(char)
            if ''.join(read) != scan.delimiter:
                for char in reversed(read):
                    scan.unread(char)


def _balanced(word: str) -> bool:
    return word.count('(') <= word.count(')')


def _is_data_type(word: str) -> bool:
    return word.split('(')[0].upper() in DATA_TYPES


def _is_key_value(word: str) -> bool:
    return word.count('=') == 1


def _keyword_token(word: str) -> Token:
    keyword = word.upper()
    # Function-style defaults such as current_timestamp()
    if keyword.endswith('()'):
        keyword = keyword[:-2]
    if keyword not in KEYWORDS:
        raise TokenizerError(f'Unknown keyword "{word}" encountered')
    return Token(TokenType.KEYWORD, keyword)


def _variable_component(component: str) -> Token:
    if component.upper() in VARIABLE_TYPES:
        return Token(TokenType.VARIABLE_TYPE, component.upper())
    if component.upper() == 'DEFAULT':
        return Token(TokenType.KEYWORD, 'DEFAULT')
    if _NUMBER_RE.match(component):
        return Token(TokenType.VALUE_NUMBER, component)
    if len(component) > 1 and component[0] in QUOTES and component[-1] == component[0]:
        return Token(TokenType.VALUE_STRING, component[1:-1])
    return Token(TokenType.VARIABLE, component)
