"""
Test configuration and fixtures.

Images are generated with Pillow; OCR providers are replaced by stubs so no
network access or tesseract binary is needed.
"""
import io
from typing import Callable, List, Optional

import pytest
from PIL import Image

from packages.parsers.errors import OcrError, OcrErrorKind
from packages.parsers.image_preprocessor import RawImage
from packages.parsers.ocr.base import OcrProviderName, RawOcrText


def make_image(
    width: int = 40,
    height: int = 30,
    color=(200, 200, 200),
    mode: str = "RGB",
    image_format: str = "PNG",
) -> RawImage:
    """Solid-color image encoded as PNG (or JPEG)"""
    image = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    mime_type = "image/png" if image_format == "PNG" else "image/jpeg"
    return RawImage(data=buffer.getvalue(), mime_type=mime_type)


def open_blob(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


class StubProvider:
    """OCR provider stub returning fixed text or raising a fixed error"""

    def __init__(
        self,
        name: OcrProviderName,
        text: Optional[str] = None,
        error: Optional[Exception] = None,
    ):
        self.name = name
        self.text = text
        self.error = error
        self.calls: List[RawImage] = []
        self.base64_calls: List[str] = []
        self.closed = False

    async def recognize(self, image: RawImage) -> RawOcrText:
        self.calls.append(image)
        if self.error is not None:
            raise self.error
        return RawOcrText.from_text(self.text or "", self.name)

    async def recognize_base64(self, image_base64: str) -> RawOcrText:
        self.base64_calls.append(image_base64)
        if self.error is not None:
            raise self.error
        return RawOcrText.from_text(self.text or "", self.name)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def sample_image() -> RawImage:
    return make_image()


@pytest.fixture
def stub_provider() -> Callable[..., StubProvider]:
    """Factory for provider stubs"""
    return StubProvider


@pytest.fixture
def network_error() -> OcrError:
    return OcrError(OcrErrorKind.NETWORK_ERROR, "connection refused", provider="cloud")


HEYTEA_LABEL = "喜茶\n多肉葡萄\n七分糖\n少冰\n￥28"
COCO_RECEIPT = "CoCo都可\n珍珠奶茶\n五分糖\n正常冰\n15元"
NO_BRAND_LABEL = "伯牙绝弦\n去冰"
