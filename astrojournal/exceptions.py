# astrojournal/exceptions.py


class AstroJournalError(Exception):
    """Base class for astrojournal errors."""


class ComputationError(AstroJournalError):
    """Deterministic astro math hit an impossible state (a defect, not user input)."""


class EnrichmentUnavailable(AstroJournalError):
    """An enrichment provider failed: timeout, quota, transport or malformed payload."""

    def __init__(self, message: str, reason: str = "error"):
        super().__init__(message)
        self.reason = reason


class StaleComparison(AstroJournalError):
    """Two snapshots cannot be compared for a field (e.g. different moon phase vocabularies)."""
