"""
Custom exception classes for the Document Compiler.

Defines a hierarchy of exceptions for specific error conditions like
configuration issues, malformed cell addresses, upstream AI failures
and compilation session conflicts.
"""

class DocumentCompilerError(Exception):
    """Base exception class for this application."""
    pass

# --- Configuration Errors ---
class ConfigError(DocumentCompilerError):
    """Base class for configuration-related errors."""
    pass

class ConfigNotFoundError(ConfigError):
    """Raised when an explicitly requested configuration file cannot be found."""
    pass

class ConfigParsingError(ConfigError):
    """Raised when the configuration file cannot be parsed (e.g., invalid YAML)."""
    pass

class ApiKeyError(ConfigError):
    """Raised for issues related to the API key configuration or resolution."""
    pass

# --- Document Model Errors ---
class InvalidAddressError(DocumentCompilerError, ValueError):
    """Raised when a spreadsheet cell reference (e.g. 'B12') cannot be parsed."""
    def __init__(self, address):
        super().__init__(f"Invalid cell address: {address!r}")
        self.address = address

class EntityAttributeError(DocumentCompilerError, ValueError):
    """Raised when an entity attribute is not a string, number or boolean."""
    pass

# --- File Processing Errors ---
class FileProcessingError(DocumentCompilerError):
    """Base class for errors reading or writing input/output files."""
    pass

class FileReadError(FileProcessingError):
    """Raised when an input file cannot be read or decoded."""
    pass

class FileWriteError(FileProcessingError):
    """Raised when an output file cannot be written."""
    pass

# --- Storage Errors ---
class StorageError(DocumentCompilerError):
    """Raised when a snapshot or edit cannot be read from or written to the store."""
    pass

# --- API Call Errors ---
class ApiCallError(DocumentCompilerError):
    """Raised when a call to the generative model fails."""
    pass

class ApiResponseError(ApiCallError):
    """Raised when the API returns an error or unexpected/invalid response structure."""
    pass

class ApiBlockedError(ApiCallError):
    """Raised when the API call is blocked due to safety settings or other reasons."""
    def __init__(self, message, reason=None, ratings=None):
        super().__init__(message)
        self.reason = reason
        self.ratings = ratings

    def __str__(self):
        details = super().__str__()
        if self.reason:
            details += f" Reason: {self.reason}."
        if self.ratings:
            details += f" Safety Ratings: {self.ratings}."
        return details

RATE_LIMIT_MESSAGE = (
    "API quota exceeded. The service rate limit has been reached. "
    "Please try again in a moment or check your API quota."
)

class RateLimitError(ApiCallError):
    """
    Raised when the provider rejects a request because of rate limiting.

    The message is meant to be shown to the user verbatim. The core never
    retries these automatically; `retryable` tells the caller it may.
    """
    retryable = True

    def __init__(self, message: str = RATE_LIMIT_MESSAGE):
        super().__init__(message)

# --- Compilation Errors ---
class CompilationError(DocumentCompilerError):
    """Base class for errors raised by the compilation stream controller."""
    pass

class CompilationInProgressError(CompilationError):
    """Raised when a compilation is requested while another one is still streaming."""
    pass

class CompilationAbortedError(CompilationError):
    """Raised inside the compilation loop when the caller aborts the request."""
    pass


def is_rate_limit_error(exception: Exception) -> bool:
    """Check if the exception is due to rate limiting."""
    if isinstance(exception, RateLimitError):
        return True
    error_msg = str(exception).lower()
    return (
        "429" in error_msg or
        "quota" in error_msg or
        "rate limit" in error_msg or
        "too many requests" in error_msg or
        "resource exhausted" in error_msg
    )
