"""Error taxonomy for the enrichment gateway.

Every outcome that crosses the service boundary is one of these classes.
Providers raise the service-level ones; the dispatcher decides whether an
error moves on to the next credential or aborts the request.
"""


class EnrichmentError(Exception):
    """Base class. `code` is the stable machine-readable identifier."""

    code = "enrichment_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidPayload(EnrichmentError):
    code = "invalid_payload"
    status_code = 400


class InvalidCredential(EnrichmentError):
    code = "invalid_credential"
    status_code = 400


class NotFound(EnrichmentError):
    code = "not_found"
    status_code = 404


class DuplicateRequest(EnrichmentError):
    code = "duplicate_request"
    status_code = 409


class NoCredential(EnrichmentError):
    code = "no_credential"
    status_code = 412


class Cancelled(EnrichmentError):
    """Caller-initiated. A "no result" outcome, not a failure."""

    code = "cancelled"
    status_code = 499


class RecoverableServiceError(EnrichmentError):
    """Quota, rate limit, timeout or transient transport failure.

    `retry_after` is the server's requested wait in seconds, when it sent one.
    """

    code = "service_unavailable"
    status_code = 503

    def __init__(self, message: str = "", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class MalformedResponse(RecoverableServiceError):
    code = "malformed_response"
    status_code = 502


class NonRecoverableServiceError(EnrichmentError):
    """Authentication rejected or a permanent service-side error."""

    code = "service_rejected"
    status_code = 502


class AllCredentialsExhausted(EnrichmentError):
    code = "all_credentials_exhausted"
    status_code = 503

    def __init__(self, last_error: RecoverableServiceError | None = None):
        detail = last_error.message if last_error is not None else "no attempt succeeded"
        super().__init__(f"All credentials exhausted (last error: {detail})")
        self.last_error = last_error
