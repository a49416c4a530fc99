"""Error taxonomy for the ingestion engine.

Every fatal condition of a run maps onto one of these classes. Each error
records the component that raised it and, where known, how many rows were
already committed to the destination when it happened.
"""

from typing import Optional


class IngestionError(Exception):
    """Base class for all fatal ingestion errors."""

    component = "ingestion"

    def __init__(self, message: str, component: Optional[str] = None, rows_committed: int = 0):
        super().__init__(message)
        self.message = message
        if component is not None:
            self.component = component
        self.rows_committed = rows_committed

    def __str__(self) -> str:
        return f"[{self.component}] {self.message}"


class SourceUnavailable(IngestionError):
    """Raised when the source file cannot be opened or read."""

    component = "row-reader"


class EmptySource(IngestionError):
    """Raised when the source has no header row or zero columns."""

    component = "row-reader"


class MalformedSource(IngestionError):
    """Raised when a source row cannot be parsed mid-stream."""

    component = "row-reader"


class InvalidHeader(IngestionError):
    """Raised when cleaned header names collide."""

    component = "type-inference"


class DdlRejected(IngestionError):
    """Raised when the destination refuses a CREATE or DROP statement."""

    component = "schema-reconciler"


class BatchWriteFailed(IngestionError):
    """Raised when a bulk write of one batch fails."""

    component = "batch-loader"


class DestinationUnreachable(IngestionError):
    """Raised when no connection to the destination can be established."""

    component = "destination"
