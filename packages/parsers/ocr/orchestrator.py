"""
Recognition Orchestrator

Drives one recognition attempt through a small state machine:

    IDLE -> PREPROCESSING -> CLOUD_ATTEMPT -> SUCCESS
                                           -> LOCAL_FALLBACK -> LOCAL_ATTEMPT -> SUCCESS | FAILED
    (every path ends in DONE)

Policy:
- Cloud (Baidu) first, it is the more accurate provider
- Any OcrError from cloud falls back to local (Tesseract) on the binarized image
- No retries: each provider gets exactly one try per call
- Both failing raises RecognitionFailed carrying both errors

The orchestrator owns its providers; close them with aclose().
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import structlog
from prometheus_client import Counter

from packages.common.config import Settings, get_settings
from packages.common.schemas.tea_info import ParsedTeaInfo
from packages.parsers.errors import OcrError, RecognitionFailed
from packages.parsers.image_preprocessor import RawImage, decode_image
from packages.parsers.ocr.base import OcrProvider, RawOcrText
from packages.parsers.tea_parser import TeaInfoParser

logger = structlog.get_logger()

OCR_ATTEMPTS = Counter(
    "teabook_ocr_attempts_total",
    "OCR provider attempts by outcome",
    ["provider", "outcome"],
)
RECOGNITION_FAILURES = Counter(
    "teabook_recognition_failures_total",
    "Recognition calls where every provider failed",
)

# Progress checkpoints reported to the caller (0-100)
PROGRESS_PREPROCESSED = 10
PROGRESS_CLOUD_STARTED = 20
PROGRESS_FALLBACK_STARTED = 40
PROGRESS_RECOGNIZED = 60
PROGRESS_PARSED = 80
PROGRESS_DONE = 100

ProgressCallback = Callable[[int], None]


class RecognitionState(str, Enum):
    IDLE = "idle"
    PREPROCESSING = "preprocessing"
    CLOUD_ATTEMPT = "cloud_attempt"
    LOCAL_FALLBACK = "local_fallback"
    LOCAL_ATTEMPT = "local_attempt"
    SUCCESS = "success"
    FAILED = "failed"
    DONE = "done"


@dataclass
class RecognitionAttempt:
    """
    Per-call state: current state, transition history, progress and errors.

    Progress never goes backwards; a lower value than already reported is
    ignored.
    """
    on_progress: Optional[ProgressCallback] = None
    state: RecognitionState = RecognitionState.IDLE
    history: List[RecognitionState] = field(default_factory=lambda: [RecognitionState.IDLE])
    progress: int = 0
    cloud_error: Optional[Exception] = None
    local_error: Optional[Exception] = None
    result: Optional[RawOcrText] = None

    def transition(self, state: RecognitionState) -> None:
        logger.debug("recognition_state", previous=self.state.value, state=state.value)
        self.state = state
        self.history.append(state)

    def report(self, progress: int) -> None:
        if progress <= self.progress:
            return
        self.progress = progress
        if self.on_progress is not None:
            self.on_progress(progress)


@dataclass
class RecognitionOutcome:
    """Text actually used plus the fields parsed from it"""
    raw_text: RawOcrText
    parsed: ParsedTeaInfo


class RecognitionOrchestrator:
    """
    Cloud-first OCR with a single local fallback.

    Args:
        cloud: Cloud provider, or None when not configured
        local: Local provider, or None when disabled
        parser: Field parser used by recognize_and_parse()
    """

    def __init__(
        self,
        cloud: Optional[OcrProvider],
        local: Optional[OcrProvider],
        parser: Optional[TeaInfoParser] = None,
    ):
        self.cloud = cloud
        self.local = local
        self.parser = parser or TeaInfoParser()

        logger.info("recognition_orchestrator_initialized",
                    cloud_enabled=cloud is not None,
                    local_enabled=local is not None)

    async def recognize(
        self,
        raw_image: RawImage,
        on_progress: Optional[ProgressCallback] = None,
        attempt: Optional[RecognitionAttempt] = None,
    ) -> RawOcrText:
        """
        Recognize text, trying cloud first and local on failure.

        Args:
            raw_image: Captured image
            on_progress: Called with increasing progress values
            attempt: Optional state object to observe the run

        Returns:
            RawOcrText tagged with the provider that produced it

        Raises:
            DecodeError: If the image cannot be decoded at all
            PreprocessingError: If a provider's image variant cannot be built
            RecognitionFailed: If every configured provider failed
        """
        if attempt is None:
            attempt = RecognitionAttempt(on_progress=on_progress)
        elif on_progress is not None:
            attempt.on_progress = on_progress

        try:
            attempt.transition(RecognitionState.PREPROCESSING)
            # Decode once up front so an unreadable photo fails before any upload
            await asyncio.to_thread(decode_image, raw_image)
            attempt.report(PROGRESS_PREPROCESSED)

            result = await self._try_cloud(raw_image, attempt)
            if result is None:
                attempt.transition(RecognitionState.LOCAL_FALLBACK)
                attempt.report(PROGRESS_FALLBACK_STARTED)
                result = await self._try_local(raw_image, attempt)

            if result is None:
                attempt.transition(RecognitionState.FAILED)
                RECOGNITION_FAILURES.inc()
                logger.error("recognition_failed",
                             cloud_error=str(attempt.cloud_error) if attempt.cloud_error else None,
                             local_error=str(attempt.local_error) if attempt.local_error else None)
                raise RecognitionFailed(attempt.cloud_error, attempt.local_error)

            attempt.transition(RecognitionState.SUCCESS)
            attempt.result = result
            attempt.report(PROGRESS_RECOGNIZED)

            logger.info("recognition_complete",
                        provider=result.provider.value,
                        lines=len(result.lines))
            return result
        finally:
            attempt.transition(RecognitionState.DONE)

    async def _try_cloud(self, raw_image: RawImage, attempt: RecognitionAttempt) -> Optional[RawOcrText]:
        if self.cloud is None:
            logger.info("cloud_ocr_not_configured")
            return None

        attempt.transition(RecognitionState.CLOUD_ATTEMPT)
        attempt.report(PROGRESS_CLOUD_STARTED)

        try:
            result = await self.cloud.recognize(raw_image)
        except OcrError as e:
            attempt.cloud_error = e
            OCR_ATTEMPTS.labels(provider="cloud", outcome=e.kind.value).inc()
            logger.warning("cloud_ocr_failed",
                           kind=e.kind.value,
                           error=e.message,
                           message="Falling back to local OCR")
            return None

        OCR_ATTEMPTS.labels(provider="cloud", outcome="success").inc()
        return result

    async def _try_local(self, raw_image: RawImage, attempt: RecognitionAttempt) -> Optional[RawOcrText]:
        if self.local is None:
            logger.warning("local_ocr_not_configured")
            return None

        attempt.transition(RecognitionState.LOCAL_ATTEMPT)

        try:
            result = await self.local.recognize(raw_image)
        except OcrError as e:
            attempt.local_error = e
            OCR_ATTEMPTS.labels(provider="local", outcome=e.kind.value).inc()
            logger.warning("local_ocr_failed", kind=e.kind.value, error=e.message)
            return None

        OCR_ATTEMPTS.labels(provider="local", outcome="success").inc()
        return result

    async def recognize_and_parse(
        self,
        raw_image: RawImage,
        on_progress: Optional[ProgressCallback] = None,
        attempt: Optional[RecognitionAttempt] = None,
    ) -> RecognitionOutcome:
        """
        Full pipeline: recognize the image, then parse the text into fields.

        Raises the same errors as recognize(); parsing itself never fails.
        """
        attempt = attempt or RecognitionAttempt(on_progress=on_progress)
        raw_text = await self.recognize(raw_image, on_progress=on_progress, attempt=attempt)

        parsed = self.parser.parse(raw_text.text)
        attempt.report(PROGRESS_PARSED)

        logger.info("tea_label_recognized",
                    provider=raw_text.provider.value,
                    filled=parsed.filled_fields(),
                    missing=parsed.missing_fields())

        attempt.report(PROGRESS_DONE)
        return RecognitionOutcome(raw_text=raw_text, parsed=parsed)

    async def aclose(self) -> None:
        """Release provider resources (HTTP client, etc.)"""
        for provider in (self.cloud, self.local):
            if provider is not None:
                await provider.aclose()
        logger.info("recognition_orchestrator_closed")


def build_orchestrator(settings: Optional[Settings] = None) -> RecognitionOrchestrator:
    """
    Wire providers and parser from configuration.

    Cloud OCR is left out when disabled or when the Baidu keys are missing;
    local OCR is left out when LOCAL_OCR_ENABLED=false.
    """
    settings = settings or get_settings()

    cloud = None
    if settings.cloud_ocr_configured:
        from packages.parsers.ocr.provider_baidu import BaiduCloudProvider
        cloud = BaiduCloudProvider.from_settings(settings)
    elif settings.cloud_ocr_enabled:
        logger.warning("cloud_ocr_missing_credentials",
                       message="Set BAIDU_API_KEY and BAIDU_SECRET_KEY to enable cloud OCR")

    local = None
    if settings.local_ocr_enabled:
        from packages.parsers.ocr.provider_tesseract import TesseractProvider
        local = TesseractProvider.from_settings(settings)

    parser = TeaInfoParser(extra_brands=settings.extra_brand_list)
    return RecognitionOrchestrator(cloud=cloud, local=local, parser=parser)
