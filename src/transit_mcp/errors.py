"""Exception types raised by the feed pipeline and the query services."""


class TransitError(Exception):
    """Base class for all transit-mcp errors."""


class FeedDownloadError(TransitError):
    """The feed could not be fetched (network, timeout or unexpected status)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FeedParseError(TransitError):
    """The feed archive or one of its rows could not be decoded."""

    def __init__(self, filename: str, row: int | None, reason: str):
        self.filename = filename
        self.row = row
        self.reason = reason
        location = f"{filename} row {row}" if row is not None else filename
        super().__init__(f"{location}: {reason}")


class FeedImportError(TransitError):
    """The import transaction hit a referential or constraint violation."""


class StoreUnavailableError(TransitError):
    """The SQLite store could not be opened or migrated."""


class FeedNotReadyError(TransitError):
    """No feed has been imported yet, so the request cannot be answered."""


class StopNotFoundError(TransitError):
    """No stop exists with the requested id."""


class RouteNotFoundError(TransitError):
    """No route exists with the requested id."""
