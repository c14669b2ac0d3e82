"""Collector error types."""

from __future__ import annotations


class CollectorError(RuntimeError):
    """A collector could not produce its sample."""


class ProcessListingError(CollectorError):
    """Every process-listing command variant failed."""

    def __init__(self, message: str, attempts: list[str] | None = None) -> None:
        super().__init__(message)
        self.attempts = list(attempts or [])
