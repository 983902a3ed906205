"""
OCR Package

Two providers behind one contract, driven by a cloud-first orchestrator.

Main entry point:
    from packages.parsers.ocr import build_orchestrator

    orchestrator = build_orchestrator()
    outcome = await orchestrator.recognize_and_parse(RawImage.from_path("label.jpg"))

Available providers:
    - BaiduCloudProvider: Baidu accurate_basic OCR (high accuracy, needs network)
    - TesseractProvider: Tesseract OCR (offline fallback, chi_sim by default)

Configuration via environment:
    - BAIDU_API_KEY / BAIDU_SECRET_KEY: Enable cloud OCR
    - CLOUD_OCR_ENABLED / LOCAL_OCR_ENABLED: Toggle providers
    - TESSERACT_PATH: Path to tesseract binary
    - TESSERACT_LANG: Tesseract language (default: chi_sim)
"""
from packages.parsers.ocr.base import OcrProvider, OcrProviderName, RawOcrText
from packages.parsers.ocr.orchestrator import (
    RecognitionAttempt,
    RecognitionOrchestrator,
    RecognitionOutcome,
    RecognitionState,
    build_orchestrator,
)
from packages.parsers.ocr.token_cache import AccessToken, BaiduCredentials, TokenCache

__all__ = [
    "AccessToken",
    "BaiduCredentials",
    "OcrProvider",
    "OcrProviderName",
    "RawOcrText",
    "RecognitionAttempt",
    "RecognitionOrchestrator",
    "RecognitionOutcome",
    "RecognitionState",
    "TokenCache",
    "build_orchestrator",
]
