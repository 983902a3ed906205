"""
Unit tests for the recognition orchestrator (cloud-first, local fallback).
"""
import pytest

from packages.common.config import Settings
from packages.parsers.errors import (
    AuthError,
    DecodeError,
    EncodeError,
    OcrError,
    OcrErrorKind,
    RecognitionFailed,
)
from packages.parsers.image_preprocessor import RawImage
from packages.parsers.ocr.base import OcrProviderName
from packages.parsers.ocr.orchestrator import (
    RecognitionAttempt,
    RecognitionOrchestrator,
    RecognitionState,
    build_orchestrator,
)
from packages.parsers.ocr.provider_baidu import BaiduCloudProvider
from packages.parsers.ocr.provider_tesseract import TesseractProvider
from packages.parsers.tea_parser import TeaInfoParser
from tests.conftest import HEYTEA_LABEL, StubProvider

CLOUD = OcrProviderName.CLOUD
LOCAL = OcrProviderName.LOCAL


class TestRecognize:

    @pytest.mark.asyncio
    async def test_cloud_success_skips_local(self, sample_image):
        cloud = StubProvider(CLOUD, text="喜茶\n多肉葡萄")
        local = StubProvider(LOCAL, text="unused")
        orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)
        attempt = RecognitionAttempt()

        result = await orchestrator.recognize(sample_image, attempt=attempt)

        assert result.provider == CLOUD
        assert result.lines == ["喜茶", "多肉葡萄"]
        assert local.calls == []
        assert attempt.history == [
            RecognitionState.IDLE,
            RecognitionState.PREPROCESSING,
            RecognitionState.CLOUD_ATTEMPT,
            RecognitionState.SUCCESS,
            RecognitionState.DONE,
        ]

    @pytest.mark.asyncio
    async def test_cloud_network_error_falls_back_to_local(self, sample_image, network_error):
        cloud = StubProvider(CLOUD, error=network_error)
        local = StubProvider(LOCAL, text="珍珠奶茶\n半糖")
        orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)
        attempt = RecognitionAttempt()

        result = await orchestrator.recognize(sample_image, attempt=attempt)

        assert result.provider == LOCAL
        assert result.text == "珍珠奶茶\n半糖"
        assert attempt.cloud_error is network_error
        assert local.calls == [sample_image]
        assert attempt.history == [
            RecognitionState.IDLE,
            RecognitionState.PREPROCESSING,
            RecognitionState.CLOUD_ATTEMPT,
            RecognitionState.LOCAL_FALLBACK,
            RecognitionState.LOCAL_ATTEMPT,
            RecognitionState.SUCCESS,
            RecognitionState.DONE,
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(OcrErrorKind))
    async def test_every_cloud_error_kind_falls_back(self, sample_image, kind):
        cloud = StubProvider(CLOUD, error=OcrError(kind, "failed"))
        local = StubProvider(LOCAL, text="奶茶")
        orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)

        result = await orchestrator.recognize(sample_image)
        assert result.provider == LOCAL

    @pytest.mark.asyncio
    async def test_auth_error_falls_back(self, sample_image):
        cloud = StubProvider(CLOUD, error=AuthError("bad key"))
        local = StubProvider(LOCAL, text="奶茶")
        orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)

        assert (await orchestrator.recognize(sample_image)).provider == LOCAL

    @pytest.mark.asyncio
    async def test_both_fail_raises_with_both_causes(self, sample_image, network_error):
        local_error = OcrError(OcrErrorKind.EMPTY_RESULT, "no text", provider="local")
        cloud = StubProvider(CLOUD, error=network_error)
        local = StubProvider(LOCAL, error=local_error)
        orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)
        attempt = RecognitionAttempt()

        with pytest.raises(RecognitionFailed) as exc_info:
            await orchestrator.recognize(sample_image, attempt=attempt)

        assert exc_info.value.cloud_error is network_error
        assert exc_info.value.local_error is local_error
        assert attempt.history[-2:] == [RecognitionState.FAILED, RecognitionState.DONE]

    @pytest.mark.asyncio
    async def test_each_provider_tried_once(self, sample_image, network_error):
        cloud = StubProvider(CLOUD, error=network_error)
        local = StubProvider(LOCAL, error=OcrError(OcrErrorKind.PROVIDER_REJECTED, "boom"))
        orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)

        with pytest.raises(RecognitionFailed):
            await orchestrator.recognize(sample_image)

        assert len(cloud.calls) == 1
        assert len(local.calls) == 1

    @pytest.mark.asyncio
    async def test_undecodable_image_fails_before_providers(self):
        cloud = StubProvider(CLOUD, text="x")
        local = StubProvider(LOCAL, text="x")
        orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)

        with pytest.raises(DecodeError):
            await orchestrator.recognize(RawImage(b"garbage", "image/jpeg"))

        assert cloud.calls == []
        assert local.calls == []

    @pytest.mark.asyncio
    async def test_preprocessing_error_from_provider_is_not_fallback(self, sample_image):
        cloud = StubProvider(CLOUD, error=EncodeError("jpeg encoder missing"))
        local = StubProvider(LOCAL, text="x")
        orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)

        with pytest.raises(EncodeError):
            await orchestrator.recognize(sample_image)
        assert local.calls == []

    @pytest.mark.asyncio
    async def test_cloud_not_configured_uses_local(self, sample_image):
        local = StubProvider(LOCAL, text="奶茶")
        orchestrator = RecognitionOrchestrator(cloud=None, local=local)

        assert (await orchestrator.recognize(sample_image)).provider == LOCAL

    @pytest.mark.asyncio
    async def test_no_providers_raises(self, sample_image):
        orchestrator = RecognitionOrchestrator(cloud=None, local=None)

        with pytest.raises(RecognitionFailed) as exc_info:
            await orchestrator.recognize(sample_image)

        assert exc_info.value.cloud_error is None
        assert exc_info.value.local_error is None


class TestProgress:

    @pytest.mark.asyncio
    async def test_progress_on_fallback_path(self, sample_image, network_error):
        orchestrator = RecognitionOrchestrator(
            cloud=StubProvider(CLOUD, error=network_error),
            local=StubProvider(LOCAL, text="奶茶"),
        )
        progress = []

        await orchestrator.recognize(sample_image, on_progress=progress.append)

        assert progress == [10, 20, 40, 60]

    @pytest.mark.asyncio
    async def test_full_pipeline_reaches_100(self, sample_image):
        orchestrator = RecognitionOrchestrator(
            cloud=StubProvider(CLOUD, text=HEYTEA_LABEL),
            local=StubProvider(LOCAL, text="unused"),
        )
        progress = []

        await orchestrator.recognize_and_parse(sample_image, on_progress=progress.append)

        assert progress == [10, 20, 60, 80, 100]
        assert progress == sorted(progress)

    def test_progress_never_decreases(self):
        progress = []
        attempt = RecognitionAttempt(on_progress=progress.append)

        attempt.report(40)
        attempt.report(20)
        attempt.report(40)
        attempt.report(60)

        assert progress == [40, 60]
        assert attempt.progress == 60


class TestRecognizeAndParse:

    @pytest.mark.asyncio
    async def test_parses_recognized_text(self, sample_image, network_error):
        orchestrator = RecognitionOrchestrator(
            cloud=StubProvider(CLOUD, error=network_error),
            local=StubProvider(LOCAL, text=HEYTEA_LABEL),
        )

        outcome = await orchestrator.recognize_and_parse(sample_image)

        assert outcome.raw_text.provider == LOCAL
        assert outcome.parsed.brand == "喜茶"
        assert outcome.parsed.name == "多肉葡萄"
        assert outcome.parsed.price == 28

    @pytest.mark.asyncio
    async def test_uses_injected_parser(self, sample_image):
        parser = TeaInfoParser(extra_brands=["茶话弄"])
        orchestrator = RecognitionOrchestrator(
            cloud=StubProvider(CLOUD, text="茶话弄\n桂花酒酿"),
            local=None,
            parser=parser,
        )

        outcome = await orchestrator.recognize_and_parse(sample_image)
        assert outcome.parsed.brand == "茶话弄"


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_aclose_closes_providers(self):
        cloud = StubProvider(CLOUD)
        local = StubProvider(LOCAL)
        orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)

        await orchestrator.aclose()

        assert cloud.closed
        assert local.closed

    @pytest.mark.asyncio
    async def test_build_without_keys_has_no_cloud(self):
        settings = Settings(_env_file=None, BAIDU_API_KEY=None, BAIDU_SECRET_KEY=None)

        orchestrator = build_orchestrator(settings)

        assert orchestrator.cloud is None
        assert isinstance(orchestrator.local, TesseractProvider)
        await orchestrator.aclose()

    @pytest.mark.asyncio
    async def test_build_with_keys(self):
        settings = Settings(
            _env_file=None,
            BAIDU_API_KEY="ak",
            BAIDU_SECRET_KEY="sk",
            LOCAL_OCR_ENABLED=False,
            TEABOOK_EXTRA_BRANDS="茶话弄, 柠季",
        )

        orchestrator = build_orchestrator(settings)

        assert isinstance(orchestrator.cloud, BaiduCloudProvider)
        assert orchestrator.local is None
        assert orchestrator.parser.brands[-2:] == ["茶话弄", "柠季"]
        await orchestrator.aclose()

    @pytest.mark.asyncio
    async def test_cloud_disabled_by_flag(self):
        settings = Settings(
            _env_file=None,
            BAIDU_API_KEY="ak",
            BAIDU_SECRET_KEY="sk",
            CLOUD_OCR_ENABLED=False,
        )

        orchestrator = build_orchestrator(settings)

        assert orchestrator.cloud is None
        await orchestrator.aclose()
