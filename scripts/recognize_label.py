#!/usr/bin/env python3
"""
Recognize a drink label or receipt photo from the command line.

Runs the full pipeline (cloud OCR -> Tesseract fallback -> field parsing)
with settings from the environment / .env.

Usage:
    python scripts/recognize_label.py <image_path>

Example:
    python scripts/recognize_label.py ~/Pictures/heytea_label.jpg
"""
import sys
import os
import asyncio

# Add parent directory to path so we can import modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from packages.parsers.errors import DecodeError, RecognitionFailed
from packages.parsers.image_preprocessor import RawImage
from packages.parsers.ocr.orchestrator import build_orchestrator

FIELD_LABELS = {
    "brand": "Brand",
    "name": "Name",
    "sugar": "Sugar",
    "ice": "Ice",
    "price": "Price",
}


async def main():
    if len(sys.argv) < 2:
        print("Usage: python scripts/recognize_label.py <image_path>")
        sys.exit(1)

    image = RawImage.from_path(sys.argv[1])
    orchestrator = build_orchestrator()

    try:
        outcome = await orchestrator.recognize_and_parse(
            image,
            on_progress=lambda progress: print(f"  ... {progress}%"),
        )
    except DecodeError as e:
        print(f"Could not read image, please retake the photo: {e}")
        sys.exit(2)
    except RecognitionFailed as e:
        print("Recognition failed, please enter the record manually")
        print(f"  Cloud: {e.cloud_error}")
        print(f"  Local: {e.local_error}")
        sys.exit(3)
    finally:
        await orchestrator.aclose()

    print(f"\nOCR provider: {outcome.raw_text.provider.value}")
    print("Raw text:")
    for line in outcome.raw_text.lines:
        print(f"  | {line}")

    parsed = outcome.parsed
    print("\nRecognized:")
    for field in parsed.filled_fields():
        print(f"  ✓ {FIELD_LABELS[field]}: {getattr(parsed, field)}")
    for field in parsed.missing_fields():
        print(f"  ✗ {FIELD_LABELS[field]}: not found")

if __name__ == "__main__":
    asyncio.run(main())
