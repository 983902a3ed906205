"""
Image Preprocessor

Produces the two derivatives of a captured label photo:

- Transport variant: bounded dimensions, JPEG-compressed, for cloud upload
- OCR variant: 2x upscaled, grayscale, hard-thresholded to pure black/white,
  for local Tesseract recognition (removes shading that breaks segmentation)

All functions are pure: they take bytes and return new bytes.
"""
import base64
import io
import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog
from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from packages.parsers.errors import DecodeError, EncodeError, PixelBufferError

# Register HEIF/HEIC support in Pillow (iPhone photos)
register_heif_opener()

logger = structlog.get_logger()

# ITU-R 601 luma weights, as a 3x4 matrix row for RGB -> L conversion
LUMINANCE_MATRIX = (0.299, 0.587, 0.114, 0)


@dataclass(frozen=True)
class RawImage:
    """Captured image bytes with their declared MIME type"""
    data: bytes
    mime_type: str = "image/jpeg"

    @classmethod
    def from_path(cls, file_path: str | Path) -> "RawImage":
        """Read an image file, guessing the MIME type from its suffix"""
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        mime_type, _ = mimetypes.guess_type(file_path.name)
        if mime_type is None and file_path.suffix.lower() in {'.heic', '.heif'}:
            mime_type = "image/heic"
        return cls(data=file_path.read_bytes(), mime_type=mime_type or "application/octet-stream")


class VariantKind(str, Enum):
    TRANSPORT = "transport"
    OCR = "ocr"


@dataclass(frozen=True)
class PreprocessedImage:
    """JPEG-encoded derivative of a RawImage"""
    data: bytes
    width: int
    height: int
    kind: VariantKind
    mime_type: str = "image/jpeg"


def decode_image(image: RawImage) -> Image.Image:
    """
    Decode raw bytes into an RGB Pillow image with EXIF rotation applied.

    Raises:
        DecodeError: If the bytes are not a decodable image
    """
    try:
        decoded = Image.open(io.BytesIO(image.data))
        decoded.load()
        decoded = ImageOps.exif_transpose(decoded)
        if decoded.mode != "RGB":
            decoded = decoded.convert("RGB")
        return decoded
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning("image_decode_failed",
                       mime_type=image.mime_type,
                       size_bytes=len(image.data),
                       error=str(e))
        raise DecodeError(f"Could not decode image ({image.mime_type}): {e}") from e


def _encode_jpeg(image: Image.Image, quality: float) -> bytes:
    """Encode as JPEG; quality is 0-1 like a canvas toBlob call"""
    pillow_quality = max(1, min(95, round(quality * 100)))
    try:
        buffer = io.BytesIO()
        image.save(buffer, format='JPEG', quality=pillow_quality)
        return buffer.getvalue()
    except (OSError, ValueError, KeyError) as e:
        raise EncodeError(f"JPEG encoding failed: {e}") from e


def to_transport_variant(
    image: RawImage,
    max_width: int = 800,
    max_height: int = 800,
    quality: float = 0.8,
) -> PreprocessedImage:
    """
    Compress an image for network upload.

    Keeps the aspect ratio and only scales down: an image already inside
    the bounds keeps its dimensions.

    Args:
        image: Source image
        max_width: Maximum output width in pixels
        max_height: Maximum output height in pixels
        quality: JPEG quality, 0-1

    Returns:
        PreprocessedImage of kind TRANSPORT

    Raises:
        DecodeError: If the image cannot be decoded
        EncodeError: If JPEG encoding fails
    """
    decoded = decode_image(image)
    width, height = decoded.size

    ratio = min(1.0, max_width / width, max_height / height)
    if ratio < 1.0:
        new_size = (max(1, round(width * ratio)), max(1, round(height * ratio)))
        decoded = decoded.resize(new_size, Image.Resampling.LANCZOS)

    data = _encode_jpeg(decoded, quality)

    logger.debug("transport_variant_created",
                 source_size=(width, height),
                 output_size=decoded.size,
                 size_bytes=len(data))

    return PreprocessedImage(
        data=data,
        width=decoded.width,
        height=decoded.height,
        kind=VariantKind.TRANSPORT,
    )


def to_ocr_variant(image: RawImage, scale: int = 2, threshold: int = 128) -> PreprocessedImage:
    """
    Build a binarized, upscaled image for local OCR.

    Each pixel becomes 0.299R + 0.587G + 0.114B, then 255 if above the
    threshold and 0 otherwise.

    Raises:
        DecodeError: If the image cannot be decoded
        PixelBufferError: If pixel conversion fails
        EncodeError: If JPEG encoding fails
    """
    decoded = decode_image(image)
    width, height = decoded.size
    target_size = (width * scale, height * scale)

    try:
        upscaled = decoded.resize(target_size, Image.Resampling.BICUBIC)
        gray = upscaled.convert("L", LUMINANCE_MATRIX)
        binary = gray.point(lambda value: 255 if value > threshold else 0)
    except (OSError, ValueError, MemoryError) as e:
        logger.error("ocr_variant_pixel_failed", size=target_size, error=str(e))
        raise PixelBufferError(f"Pixel processing failed: {e}") from e

    data = _encode_jpeg(binary, 0.95)

    logger.debug("ocr_variant_created",
                 source_size=(width, height),
                 output_size=binary.size,
                 threshold=threshold)

    return PreprocessedImage(
        data=data,
        width=binary.width,
        height=binary.height,
        kind=VariantKind.OCR,
    )


def to_base64(blob: bytes) -> str:
    """Base64 payload without a data-URL prefix"""
    return base64.b64encode(blob).decode("ascii")
