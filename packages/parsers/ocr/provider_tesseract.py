"""
Tesseract OCR Provider (offline fallback)

Runs locally with no network or API key. Lower accuracy than Baidu on
photos, so it is only used when the cloud provider fails.

Input is the binarized, 2x upscaled OCR variant. Requires the tesseract-ocr
system package plus the language data for the configured script
(chi_sim for simplified Chinese).
"""
import asyncio
import io
from typing import Optional

import pytesseract
import structlog
from PIL import Image

from packages.common.config import Settings
from packages.parsers.errors import OcrError, OcrErrorKind
from packages.parsers.image_preprocessor import RawImage, to_ocr_variant
from packages.parsers.ocr.base import OcrProviderName, RawOcrText

logger = structlog.get_logger()


class TesseractProvider:
    """
    Tesseract OCR provider.

    Configured once for a target language and reused across calls.
    With auto_rotate enabled, orientation is detected (OSD) and the image
    rotated upright before recognition.
    """

    name = OcrProviderName.LOCAL

    def __init__(
        self,
        lang: str = "chi_sim",
        tesseract_path: Optional[str] = None,
        auto_rotate: bool = True,
        scale: int = 2,
        threshold: int = 128,
    ):
        """
        Initialize Tesseract provider.

        Args:
            lang: Tesseract language code(s), e.g. "chi_sim" or "chi_sim+eng"
            tesseract_path: Path to tesseract binary (auto-detected if None)
            auto_rotate: Detect and correct page orientation first
            scale: Upscale factor for the OCR variant
            threshold: Binarization threshold for the OCR variant
        """
        if tesseract_path:
            pytesseract.pytesseract.tesseract_cmd = tesseract_path

        self.lang = lang
        self.auto_rotate = auto_rotate
        self.scale = scale
        self.threshold = threshold

        logger.info("tesseract_provider_initialized",
                    lang=lang,
                    auto_rotate=auto_rotate)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TesseractProvider":
        return cls(
            lang=settings.tesseract_lang,
            tesseract_path=settings.tesseract_path,
            auto_rotate=settings.tesseract_auto_rotate,
            scale=settings.ocr_upscale,
            threshold=settings.ocr_threshold,
        )

    async def recognize(self, image: RawImage) -> RawOcrText:
        """
        Binarize the image and recognize it with Tesseract.

        Raises:
            OcrError: PROVIDER_REJECTED if Tesseract fails, EMPTY_RESULT if
                nothing was recognized
            DecodeError, EncodeError, PixelBufferError: From preprocessing
        """
        variant = await asyncio.to_thread(to_ocr_variant, image, self.scale, self.threshold)

        logger.info("tesseract_processing_image",
                    width=variant.width,
                    height=variant.height,
                    lang=self.lang)

        text = await asyncio.to_thread(self._recognize_sync, variant.data)

        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not lines:
            raise OcrError(
                OcrErrorKind.EMPTY_RESULT,
                "Tesseract recognized no text",
                provider=self.name.value,
            )

        logger.info("tesseract_complete", lines=len(lines), chars=len(text))
        return RawOcrText(lines=lines, provider=self.name)

    def _recognize_sync(self, image_bytes: bytes) -> str:
        """Blocking Tesseract call; runs in a worker thread"""
        try:
            image = Image.open(io.BytesIO(image_bytes))
            if self.auto_rotate:
                image = self._correct_orientation(image)
            return pytesseract.image_to_string(image, lang=self.lang)
        except pytesseract.TesseractNotFoundError as e:
            logger.error("tesseract_not_installed", error=str(e))
            raise OcrError(OcrErrorKind.PROVIDER_REJECTED, "tesseract binary not found",
                           provider=self.name.value) from e
        except pytesseract.TesseractError as e:
            logger.error("tesseract_failed", error=str(e), lang=self.lang)
            raise OcrError(OcrErrorKind.PROVIDER_REJECTED, f"Tesseract failed: {e}",
                           provider=self.name.value) from e

    def _correct_orientation(self, image: Image.Image) -> Image.Image:
        """
        Rotate the image upright using Tesseract orientation detection.

        OSD needs a reasonable amount of text; when it cannot decide, the
        image is used as is.
        """
        try:
            osd = pytesseract.image_to_osd(image, output_type=pytesseract.Output.DICT)
        except pytesseract.TesseractError as e:
            logger.debug("tesseract_osd_skipped", error=str(e))
            return image

        rotate = int(osd.get("rotate", 0))
        if rotate:
            logger.info("tesseract_orientation_corrected", rotate=rotate)
            # OSD reports clockwise degrees; Pillow rotates counter-clockwise
            image = image.rotate(-rotate, expand=True, fillcolor=255)
        return image

    async def aclose(self) -> None:
        # pytesseract spawns a process per call; nothing held between calls
        return None
