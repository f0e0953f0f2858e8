"""
Error taxonomy for ebook generation.

StoreError      - Redis unreachable or a record could not be decoded
NotFound        - a job or page record does not exist
GenerationError - the generator failed (after retries, where applicable)
ValidationError - bad input to job creation
"""


class EbookError(Exception):
    """Base class for all ebook generation errors."""
    pass


class StoreError(EbookError):
    """Raised when the durable store is unreachable or holds malformed data."""
    pass


class NotFound(EbookError):
    """Raised when a job or page record is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Record not found: {key}")


class GenerationError(EbookError):
    """Raised when the generator could not produce text."""
    pass


class GeneratorConfigError(GenerationError):
    """Raised when the generator is misconfigured (e.g. missing API key). Never retried."""
    pass


class ValidationError(EbookError):
    """Raised when job creation input is invalid."""
    pass
