"""
Exception taxonomy for the analysis core.

- ExternalServiceError: a scraper or AI call failed or returned unusable data.
  Retried by the task's own backoff table, then surfaced as a sanitized
  session failure.
- ScrapeTimeoutError: poll attempts exhausted or provider status never
  resolved. Fatal to that scrape chain.
- RecordNotFoundError: the session or product is gone. Handled by a silent
  early return, never alerted.
- DataIntegrityError: empty or partial scrape payload. Degrades gracefully.
"""


class AnalyzerError(Exception):
    """Base error for analyzer operations."""

    pass


class ExternalServiceError(AnalyzerError):
    """An external scraper or analysis service failed."""

    def __init__(self, message: str, service: str = "external", status_code: int = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class ScrapeTimeoutError(ExternalServiceError, TimeoutError):
    """Provider job did not become ready within the polling budget."""

    def __init__(self, message: str, job_id: str = None, attempts: int = 0):
        super().__init__(message, service="brightdata")
        self.job_id = job_id
        self.attempts = attempts


class RecordNotFoundError(AnalyzerError):
    """Session or product record no longer exists."""

    pass


class InvalidProductUrlError(AnalyzerError):
    """The submitted URL does not identify an Amazon product."""

    pass


class DataIntegrityError(AnalyzerError):
    """Scrape payload was empty or missing required fields."""

    pass
