"""Project-wide custom exceptions."""


class GrepDbError(Exception):
    """Base exception for grepdb."""


class ConfigurationError(GrepDbError):
    """Raised when the .env configuration is missing or invalid."""


class DatabaseError(GrepDbError):
    """Raised when the database connection or a query fails."""


class MetadataError(GrepDbError):
    """Raised when requested table, column or database metadata does not exist."""


class TokenizerError(GrepDbError):
    """Raised when an SQL dump cannot be opened or tokenized."""


class ParserError(GrepDbError):
    """Raised when a tokenized CREATE TABLE statement cannot be understood."""


class SerializedDataError(GrepDbError):
    """Raised when a value is not well-formed PHP serialized data."""

    def __init__(self, message, offset=None):
        if offset is not None:
            message = f"{message} at offset {offset}"
        super().__init__(message)
        self.offset = offset


class ReplaceError(GrepDbError):
    """Raised when no replacement strategy can handle a field."""
