"""
Shared error types.

Kept in a separate module so the storage layer, the model client and the
API can raise and catch the same classes without import cycles.
"""

from typing import Any, List, Optional, Tuple

API_KEY_MESSAGE = "No API key. Add your Gemini API key in the extension popup."


class SeeRealError(Exception):
    """Base exception for all core errors"""
    code = "error"
    http_status = 500
    retryable = False

    def __init__(self, message: Optional[str] = None, details: Any = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code
        self.details = details


class CredentialMissing(SeeRealError):
    """No model credential configured"""
    code = "credential_missing"
    http_status = 400

    def __init__(self, message: str = API_KEY_MESSAGE, details: Any = None):
        super().__init__(message, details)


class InvalidCredential(SeeRealError):
    """The configured API key was rejected"""
    code = "invalid_credential"
    http_status = 401


class AllModelsFailed(SeeRealError):
    """Every model in the fallback chain failed or returned nothing"""
    code = "all_models_failed"
    http_status = 502
    retryable = True

    def __init__(
        self,
        last_error: Optional[BaseException] = None,
        errors: Optional[List[Tuple[str, BaseException]]] = None,
    ):
        self.last_error = last_error
        self.errors = list(errors or [])
        message = "All models failed to respond"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message, {"models": [name for name, _ in self.errors]})


class MalformedModelOutput(SeeRealError):
    """Model output could not be parsed into the expected shape"""
    code = "malformed_model_output"
    http_status = 502
    retryable = True


class AnalysisFailed(SeeRealError):
    """A generation flow failed with no safe default"""
    code = "analysis_failed"
    http_status = 502
    retryable = True


class StorageReadFailure(SeeRealError):
    """Reading from the analysis store failed"""
    code = "storage_read_failure"
    http_status = 500


class StorageWriteFailure(SeeRealError):
    """Writing to the analysis store failed; nothing was persisted"""
    code = "storage_write_failure"
    http_status = 503
    retryable = True


class UnknownCommand(SeeRealError):
    """Command name is not part of the message API"""
    code = "unknown_command"
    http_status = 400


class InvalidPayload(SeeRealError):
    """Command payload failed validation"""
    code = "invalid_payload"
    http_status = 422


class ExtractionFailed(SeeRealError):
    """No article text could be extracted from the page"""
    code = "extraction_failed"
    http_status = 422


class VideoGenerationTimeout(SeeRealError):
    """Video generation did not finish within the polling budget"""
    code = "video_timeout"
    http_status = 504
    retryable = True
