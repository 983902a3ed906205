"""
OCR API Router
Label recognition for the record form

- POST /api/ocr: cloud OCR proxy for clients that compress and base64 the
  image themselves (keeps the Baidu keys server-side)
- POST /api/recognize: full pipeline on an uploaded photo, returns parsed
  fields plus which ones were not found
"""
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from packages.common.schemas.tea_info import ParsedTeaInfo
from packages.parsers.errors import (
    DecodeError,
    OcrError,
    PreprocessingError,
    RecognitionFailed,
)
from packages.parsers.image_preprocessor import RawImage
from packages.parsers.ocr.orchestrator import RecognitionOrchestrator

logger = structlog.get_logger()
router = APIRouter()

ALLOWED_CONTENT_TYPES = [
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
]


class OcrProxyRequest(BaseModel):
    """Base64 image payload (no data-URL prefix)"""
    image: Optional[str] = Field(None, description="Base64-encoded JPEG")


class RecognitionResponse(BaseModel):
    """Result of the full recognition pipeline"""
    provider: str = Field(..., description="OCR provider that produced the text (cloud or local)")
    text: str = Field(..., description="Raw recognized text")
    parsed: ParsedTeaInfo
    filled_fields: List[str]
    missing_fields: List[str]


def get_orchestrator(request: Request) -> RecognitionOrchestrator:
    """Orchestrator created at startup and stored on app state"""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Recognition service not initialized",
        )
    return orchestrator


@router.post("/ocr")
async def ocr_proxy(
    payload: OcrProxyRequest,
    orchestrator: RecognitionOrchestrator = Depends(get_orchestrator),
):
    """
    Recognize a base64 image with the cloud provider only.

    Returns {"success": true, "text": "..."}; failures return
    {"success": false, "error": "..."} with status 500.
    """
    cloud = orchestrator.cloud
    if cloud is None or not hasattr(cloud, "recognize_base64"):
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Server configuration error: Baidu API key missing",
                "message": "Set BAIDU_API_KEY and BAIDU_SECRET_KEY",
            },
        )

    if not payload.image:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Missing image data"},
        )

    try:
        result = await cloud.recognize_base64(payload.image)
    except OcrError as e:
        logger.warning("ocr_proxy_failed", kind=e.kind.value, error=e.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e)},
        )

    return {"success": True, "text": result.text}


@router.post("/recognize", response_model=RecognitionResponse)
async def recognize_label(
    file: UploadFile = File(...),
    orchestrator: RecognitionOrchestrator = Depends(get_orchestrator),
):
    """
    Recognize a drink label or receipt photo.

    - **file**: Photo (JPG, PNG, WebP, HEIC)

    422 means the photo could not be read (retake it); 502 means both OCR
    providers failed (enter the record manually).
    """
    logger.info("recognize_upload_started",
                filename=file.filename,
                content_type=file.content_type)

    if file.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"File type {file.content_type} not supported. Allowed: {ALLOWED_CONTENT_TYPES}"
        )

    content = await file.read()
    raw_image = RawImage(data=content, mime_type=file.content_type)

    try:
        outcome = await orchestrator.recognize_and_parse(raw_image)
    except DecodeError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Image could not be read, please retake the photo: {e}",
        ) from e
    except PreprocessingError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Image preprocessing failed: {e}",
        ) from e
    except RecognitionFailed as e:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={
                "detail": "Recognition failed, please enter the record manually",
                "cloud_error": str(e.cloud_error) if e.cloud_error else None,
                "local_error": str(e.local_error) if e.local_error else None,
            },
        )

    parsed = outcome.parsed
    return RecognitionResponse(
        provider=outcome.raw_text.provider.value,
        text=outcome.raw_text.text,
        parsed=parsed,
        filled_fields=parsed.filled_fields(),
        missing_fields=parsed.missing_fields(),
    )
