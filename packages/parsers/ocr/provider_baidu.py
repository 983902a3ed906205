"""
Baidu Cloud OCR Provider

High-accuracy text recognition via Baidu's "accurate_basic" endpoint.
This is the preferred provider; the orchestrator falls back to Tesseract
when it fails.

Request flow:
1. Get a bearer token (client-credentials grant, cached in TokenCache)
2. Compress the image to the transport variant and base64 it
3. POST form-encoded image=<base64> to accurate_basic?access_token=<token>
4. Response: {"words_result": [{"words": "..."}], "words_result_num": N}
"""
import asyncio
from typing import Any, Dict, Optional

import httpx
import structlog

from packages.common.config import Settings
from packages.parsers.errors import AuthError, OcrError, OcrErrorKind
from packages.parsers.image_preprocessor import RawImage, to_base64, to_transport_variant
from packages.parsers.ocr.base import OcrProviderName, RawOcrText
from packages.parsers.ocr.token_cache import BaiduCredentials, TokenCache, TokenGrant

logger = structlog.get_logger()

# Baidu error codes meaning the access token is invalid or expired
TOKEN_ERROR_CODES = {110, 111}

# Baidu tokens live 30 days; used when a grant omits expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 30 * 24 * 3600


class BaiduCloudProvider:
    """
    Baidu accurate_basic OCR provider.

    The HTTP client and token cache are injectable. A client created here is
    owned by the provider and closed by aclose().
    """

    name = OcrProviderName.CLOUD

    def __init__(
        self,
        credentials: BaiduCredentials,
        token_url: str = "https://aip.baidubce.com/oauth/2.0/token",
        ocr_url: str = "https://aip.baidubce.com/rest/2.0/ocr/v1/accurate_basic",
        timeout_seconds: float = 10.0,
        max_width: int = 800,
        max_height: int = 800,
        quality: float = 0.8,
        client: Optional[httpx.AsyncClient] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        self.credentials = credentials
        self.token_url = token_url
        self.ocr_url = ocr_url
        self.max_width = max_width
        self.max_height = max_height
        self.quality = quality

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self.token_cache = token_cache or TokenCache(self.fetch_token)

        logger.info("baidu_provider_initialized", ocr_url=ocr_url)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "BaiduCloudProvider":
        """Build a provider from application settings"""
        return cls(
            credentials=BaiduCredentials(
                api_key=settings.baidu_api_key or "",
                secret_key=settings.baidu_secret_key or "",
            ),
            token_url=settings.baidu_token_url,
            ocr_url=settings.baidu_ocr_url,
            timeout_seconds=settings.baidu_timeout_seconds,
            max_width=settings.transport_max_width,
            max_height=settings.transport_max_height,
            quality=settings.transport_quality,
            **kwargs,
        )

    async def fetch_token(self, credentials: BaiduCredentials) -> TokenGrant:
        """
        Request a new access token.

        Raises:
            OcrError: NETWORK_ERROR if the token endpoint is unreachable
            AuthError: If the response carries no usable token
        """
        params = {
            "grant_type": "client_credentials",
            "client_id": credentials.api_key,
            "client_secret": credentials.secret_key,
        }
        data = await self._post_json(self.token_url, params=params)

        token = data.get("access_token")
        if not token:
            logger.error("baidu_token_rejected",
                         error=data.get("error"),
                         description=data.get("error_description"))
            raise AuthError(
                f"Failed to obtain access token: {data.get('error_description') or data.get('error') or 'no token'}"
            )

        try:
            expires_in = int(data.get("expires_in", DEFAULT_TOKEN_LIFETIME_SECONDS))
        except (TypeError, ValueError) as e:
            raise AuthError(f"Malformed expires_in: {data.get('expires_in')!r}") from e

        return TokenGrant(token=token, expires_in=expires_in)

    async def recognize_base64(self, image_base64: str) -> RawOcrText:
        """
        Recognize an already-compressed, base64-encoded image.

        Used directly by the /api/ocr proxy endpoint, whose clients compress
        before upload.
        """
        token = await self.token_cache.get_token(self.credentials)

        data = await self._post_json(
            self.ocr_url,
            params={"access_token": token},
            data={"image": image_base64},
        )

        error_code = data.get("error_code")
        if error_code is not None:
            message = data.get("error_msg", "unknown error")
            logger.warning("baidu_ocr_error_response", error_code=error_code, error_msg=message)
            if error_code in TOKEN_ERROR_CODES:
                self.token_cache.invalidate()
                raise AuthError(f"Access token rejected ({error_code}): {message}")
            raise OcrError(
                OcrErrorKind.PROVIDER_REJECTED,
                f"Baidu error {error_code}: {message}",
                provider=self.name.value,
            )

        words_result = data.get("words_result")
        if words_result is not None and not isinstance(words_result, list):
            raise OcrError(
                OcrErrorKind.PROVIDER_REJECTED,
                f"Malformed words_result: expected a list, got {type(words_result).__name__}",
                provider=self.name.value,
            )

        lines = []
        for item in words_result or []:
            if not isinstance(item, dict) or not isinstance(item.get("words", ""), str):
                logger.warning("baidu_ocr_malformed_item", item=repr(item))
                raise OcrError(
                    OcrErrorKind.PROVIDER_REJECTED,
                    f"Malformed words_result entry: {item!r}",
                    provider=self.name.value,
                )
            words = item.get("words", "").strip()
            if words:
                lines.append(words)

        if not lines:
            raise OcrError(
                OcrErrorKind.EMPTY_RESULT,
                "No text recognized",
                provider=self.name.value,
            )

        logger.info("baidu_ocr_complete",
                    lines=len(lines),
                    words_result_num=data.get("words_result_num"))

        return RawOcrText(lines=lines, provider=self.name)

    async def recognize(self, image: RawImage) -> RawOcrText:
        """
        Compress the image and recognize it with Baidu OCR.

        Raises:
            OcrError: On network, auth, rejection or empty result
            DecodeError, EncodeError: If the transport variant cannot be built
        """
        variant = await asyncio.to_thread(
            to_transport_variant,
            image,
            self.max_width,
            self.max_height,
            self.quality,
        )

        logger.info("baidu_ocr_started",
                    width=variant.width,
                    height=variant.height,
                    size_bytes=len(variant.data))

        return await self.recognize_base64(to_base64(variant.data))

    async def _post_json(
        self,
        url: str,
        params: Dict[str, str],
        data: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST and decode a JSON object, mapping transport failures to OcrError"""
        try:
            response = await self._client.post(url, params=params, data=data)
        except httpx.TimeoutException as e:
            logger.warning("baidu_request_timeout", url=url)
            raise OcrError(OcrErrorKind.NETWORK_ERROR, f"Timeout calling {url}", provider=self.name.value) from e
        except httpx.HTTPError as e:
            logger.warning("baidu_request_failed", url=url, error=str(e))
            raise OcrError(OcrErrorKind.NETWORK_ERROR, str(e), provider=self.name.value) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code in (401, 403):
            raise AuthError(f"HTTP {response.status_code} from {url}")

        if not isinstance(payload, dict):
            raise OcrError(
                OcrErrorKind.PROVIDER_REJECTED,
                f"HTTP {response.status_code}: response is not a JSON object",
                provider=self.name.value,
            )

        if response.status_code >= 400 and "error_code" not in payload and "error" not in payload:
            raise OcrError(
                OcrErrorKind.PROVIDER_REJECTED,
                f"HTTP {response.status_code} from {url}",
                provider=self.name.value,
            )

        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
