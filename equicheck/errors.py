"""Exception hierarchy for document analysis and record storage."""


class AnalysisError(Exception):
    """Base exception for a failed document analysis.

    ``kind`` is a stable identifier for the failure class; ``str(exc)`` is the
    human-readable message shown to the user.
    """

    kind = "unknown"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(AnalysisError):
    kind = "configuration"


class EmptyDocument(AnalysisError):
    kind = "empty_document"


class AuthError(AnalysisError):
    kind = "auth"


class RateLimited(AnalysisError):
    kind = "rate_limited"


class ServiceUnavailable(AnalysisError):
    kind = "service_unavailable"


class EmptyResponse(AnalysisError):
    kind = "empty_response"


class MalformedResponse(AnalysisError):
    """The model answered, but not with a usable AnalysisResult."""

    kind = "malformed_response"

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.detail = detail


class UnknownError(AnalysisError):
    kind = "unknown"

    def __init__(self, message: str, original: BaseException | None = None):
        super().__init__(message)
        self.original = original


class StorageError(Exception):
    """Base exception for the record store."""


class RemoteUnavailable(StorageError):
    """No remote backend is open. Always handled by falling back to local storage."""


class PersistenceFailed(StorageError):
    """The local fallback could not be written, so the record was not stored anywhere."""
