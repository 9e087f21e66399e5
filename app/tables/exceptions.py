# app/tables/exceptions.py
"""Error taxonomy for the table query engine.

Each error carries the HTTP status it maps to when it reaches the API.
"""


class TableQueryError(Exception):
    """Base class for every failure raised by the table query engine."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TableQueryError):
    """Required input is missing; the operation is aborted without mutating state."""

    status_code = 400


class DiscoveryError(TableQueryError):
    """Schema or object lookup failed."""

    status_code = 422


class ObjectNotFound(DiscoveryError):
    status_code = 404


class EmptyResult(DiscoveryError):
    pass


class ResolutionError(TableQueryError):
    """Fetching context record values failed."""

    status_code = 502


class ExecutionError(TableQueryError):
    """Running a compiled query failed."""

    status_code = 400


class ConfigParseError(TableQueryError):
    """A persisted configuration could not be read."""

    status_code = 400


class ConfigNotFound(TableQueryError):
    status_code = 404
