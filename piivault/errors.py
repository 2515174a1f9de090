"""Error taxonomy for field encryption and its HTTP translation."""
import logging
from typing import Optional, Dict, Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PIIVaultError(Exception):
    """Base class for every error raised by piivault."""

    code = "PIIVAULT_ERROR"
    status_code = 500
    public_message = "An internal error occurred."

    def __init__(self, message: str = "", index: Optional[int] = None):
        super().__init__(message or self.public_message)
        self.index = index


class ConfigurationMissing(PIIVaultError):
    """Required process-wide configuration is absent. Fatal at startup."""

    code = "CONFIG_MISSING"
    status_code = 503
    public_message = "Service is not configured."

    def __init__(self, missing: list):
        self.missing = list(missing)
        super().__init__(f"Missing required configuration: {', '.join(self.missing)}")


class IntegrityViolation(PIIVaultError):
    """Integrity tag present but wrong: tampering or corruption."""

    code = "INTEGRITY_VIOLATION"
    status_code = 500

    def __init__(self, message: str = "", index: Optional[int] = None):
        if not message:
            message = "HMAC integrity verification failed - data tampering detected"
            if index is not None:
                message = f"HMAC integrity verification failed for item {index}"
        super().__init__(message, index=index)


class MalformedEnvelope(PIIVaultError):
    """Stored ciphertext string is structurally invalid."""

    code = "ENVELOPE_INVALID"
    status_code = 500
    public_message = "Invalid encrypted value."


class EmptyAfterTagStrip(MalformedEnvelope):
    """A tag-like suffix with no ciphertext in front of it."""

    code = "ENVELOPE_EMPTY"


class LengthMismatch(PIIVaultError):
    """Batch inputs of different lengths. Programmer error, not retryable."""

    code = "LENGTH_MISMATCH"
    status_code = 500
    public_message = "Invalid batch request."


class RemoteServiceError(PIIVaultError):
    """The key service failed. Transient; callers may retry with backoff."""

    code = "KEY_SERVICE_ERROR"
    status_code = 502
    public_message = "Upstream key service unavailable."


class ContextMismatch(RemoteServiceError):
    """The key service rejected the encryption context."""

    code = "CONTEXT_MISMATCH"


class NoCiphertextReturned(RemoteServiceError):
    """The key service answered without the expected payload field."""

    code = "KEY_SERVICE_EMPTY_RESPONSE"


def error_body(exc: PIIVaultError, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build the client-facing error body. Never echoes internal detail."""
    body: Dict[str, Any] = {
        "code": exc.code,
        "message": exc.public_message,
    }
    if details:
        body["details"] = details
    return {"error": body}


def raise_http_error(
    exc: PIIVaultError,
    details: Optional[Dict[str, Any]] = None,
    status_code: Optional[int] = None
) -> None:
    """Raise a standardized HTTPException for a piivault error.

    Args:
        exc: The error raised by the encryption layer.
        details: Optional extra details safe to show the client.
        status_code: Override for callers that can attribute a contract
            error (LengthMismatch, MalformedEnvelope) to bad client input.
    """
    raise HTTPException(
        status_code=status_code or exc.status_code,
        detail=error_body(exc, details)
    ) from exc


def register_exception_handlers(app: FastAPI) -> None:
    """Translate uncaught piivault errors into generic JSON responses."""

    @app.exception_handler(PIIVaultError)
    async def _handle_piivault_error(request: Request, exc: PIIVaultError) -> JSONResponse:
        logger.error(f"{exc.code} while handling {request.method} {request.url.path}")
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))
