"""
OCR Provider Base Interface

Defines the contract for both OCR providers (Baidu cloud, Tesseract local).
The orchestrator only sees this interface, so either side can be replaced
with a stub in tests or swapped via configuration.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Protocol

from packages.parsers.image_preprocessor import RawImage


class OcrProviderName(str, Enum):
    """Which provider produced a piece of text"""
    CLOUD = "cloud"
    LOCAL = "local"


@dataclass
class RawOcrText:
    """
    Text lines returned by the provider that succeeded.

    Attributes:
        lines: Recognized lines in reading order
        provider: Provider that produced them (for diagnostics)
    """
    lines: List[str] = field(default_factory=list)
    provider: OcrProviderName = OcrProviderName.CLOUD

    @property
    def text(self) -> str:
        """Lines joined with newlines, the form the field parser expects"""
        return "\n".join(self.lines)

    @classmethod
    def from_text(cls, text: str, provider: OcrProviderName) -> "RawOcrText":
        return cls(lines=text.splitlines(), provider=provider)


class OcrProvider(Protocol):
    """
    Protocol for OCR providers.

    All providers take the original captured image; each builds the
    preprocessed variant it needs.
    """

    name: OcrProviderName

    async def recognize(self, image: RawImage) -> RawOcrText:
        """
        Recognize text in an image.

        Args:
            image: Captured image

        Returns:
            RawOcrText with at least one non-empty line

        Raises:
            OcrError: With kind NETWORK_ERROR, AUTH_ERROR, PROVIDER_REJECTED
                or EMPTY_RESULT
            PreprocessingError: If the image variant cannot be produced
        """
        ...

    async def aclose(self) -> None:
        """Release resources held by the provider"""
        ...
