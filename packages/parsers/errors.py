"""
Recognition pipeline errors

Preprocessing errors are terminal for the image (caller should prompt for a
new photo). OCR provider errors are handled inside the orchestrator, which
falls back to the other provider. RecognitionFailed is raised only when both
providers are exhausted.
"""
from enum import Enum
from typing import Optional


class TeabookError(Exception):
    """Base class for all recognition pipeline errors"""
    pass


class PreprocessingError(TeabookError):
    """Raised when an image cannot be turned into a transport or OCR variant"""
    pass


class DecodeError(PreprocessingError):
    """Raised when the input bytes are not a decodable image"""
    pass


class EncodeError(PreprocessingError):
    """Raised when the processed image cannot be re-encoded"""
    pass


class PixelBufferError(PreprocessingError):
    """Raised when pixel-level access to the decoded image fails"""
    pass


class OcrErrorKind(str, Enum):
    """Failure categories shared by all OCR providers"""
    NETWORK_ERROR = "network_error"
    AUTH_ERROR = "auth_error"
    PROVIDER_REJECTED = "provider_rejected"
    EMPTY_RESULT = "empty_result"


class OcrError(TeabookError):
    """
    Raised by an OCR provider when it cannot produce text.

    Attributes:
        kind: Failure category
        message: Human-readable detail
        provider: Name of the provider that failed (cloud, local)
    """

    def __init__(self, kind: OcrErrorKind, message: str, provider: Optional[str] = None):
        self.kind = kind
        self.message = message
        self.provider = provider
        super().__init__(f"{kind.value}: {message}")


class AuthError(OcrError):
    """Raised when the cloud provider does not hand out a usable access token"""

    def __init__(self, message: str, provider: Optional[str] = "cloud"):
        super().__init__(OcrErrorKind.AUTH_ERROR, message, provider)


class RecognitionFailed(TeabookError):
    """
    Raised when every configured OCR provider failed.

    Both underlying errors are attached so the caller can log or display them.
    A provider that was not configured is reported as None.
    """

    def __init__(self, cloud_error: Optional[Exception], local_error: Optional[Exception]):
        self.cloud_error = cloud_error
        self.local_error = local_error
        super().__init__(
            f"Recognition failed (cloud: {cloud_error or 'not configured'}, "
            f"local: {local_error or 'not configured'})"
        )
