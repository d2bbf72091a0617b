"""Exception hierarchy for notegraph."""

from pathlib import Path


class NotegraphError(Exception):
    """Base exception for all notegraph errors.

    All exceptions in this package inherit from this class,
    allowing callers to catch all notegraph errors with
    a single except clause.
    """

    pass


# Configuration Errors
class ConfigError(NotegraphError):
    """Configuration-related errors."""

    pass


class ConfigParseError(ConfigError):
    """Configuration file has invalid syntax."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid config at {path}: {detail}")


class ConfigValidationError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: object, reason: str) -> None:
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid config value for '{key}': {reason}")


# Database Errors
class DatabaseError(NotegraphError):
    """Database-related errors."""

    pass


class DatabaseNotFoundError(DatabaseError):
    """Graph database file doesn't exist."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Graph database not found: {path}")


class GraphImportError(DatabaseError):
    """A graph export could not be loaded."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Cannot import graph from {path}: {detail}")


# Validation Errors
class ValidationError(NotegraphError):
    """Invalid input value."""

    def __init__(self, field: str, value: object, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Search Errors
class SearchError(NotegraphError):
    """Errors raised while evaluating a search."""

    pass


class ParseError(SearchError):
    """A hierarchical query expression is malformed."""

    def __init__(self, query: str, message: str) -> None:
        self.query = query
        self.message = message
        super().__init__(f"Failed to parse query '{query}': {message}")


class StoreError(SearchError):
    """The content graph store failed to answer a query."""

    pass


class ExpansionError(SearchError):
    """The term-expansion service failed."""

    def __init__(self, term: str, detail: str) -> None:
        self.term = term
        self.detail = detail
        super().__init__(f"Expansion of '{term}' failed: {detail}")


class RegexError(SearchError):
    """A user-supplied regular expression does not compile."""

    def __init__(self, pattern: str, detail: str) -> None:
        self.pattern = pattern
        self.detail = detail
        super().__init__(f"Invalid regex /{pattern}/: {detail}")


class SearchTimeoutError(SearchError):
    """The search did not finish before its deadline."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Search did not finish within {timeout:g}s")
