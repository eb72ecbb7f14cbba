"""Error taxonomy for the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class IngestionError(Exception):
    """Base pipeline error."""

    message: str
    code: str = "ingestion_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class FeedUnavailable(IngestionError):
    """Feed could not be fetched or parsed; the whole cycle is aborted."""

    code: str = "feed_unavailable"


@dataclass(slots=True)
class ResolutionDegraded(IngestionError):
    """A resolution strategy failed; the resolver falls back to the next one."""

    code: str = "resolution_degraded"


@dataclass(slots=True)
class ExtractionFailed(IngestionError):
    """Extraction service returned no usable content."""

    code: str = "extraction_failed"
    url: str | None = None


@dataclass(slots=True)
class SummarizationFailed(IngestionError):
    """Summarization service failed after exhausting retries."""

    code: str = "summarization_failed"
    attempts: int = 0


@dataclass(slots=True)
class PersistenceConflict(IngestionError):
    """Another writer inserted the same unique key first."""

    code: str = "persistence_conflict"


@dataclass(slots=True)
class PersistenceFailure(IngestionError):
    """Unexpected store error while writing an article or ledger record."""

    code: str = "persistence_failure"


class CycleAlreadyRunning(RuntimeError):
    """Another live cycle holds the single running-cycle slot."""
