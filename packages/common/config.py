"""
Application configuration using Pydantic Settings
Reads from environment variables and .env file
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    environment: str = Field(default="production", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Cloud OCR (Baidu accurate_basic)
    cloud_ocr_enabled: bool = Field(default=True, alias="CLOUD_OCR_ENABLED")
    baidu_api_key: Optional[str] = Field(default=None, alias="BAIDU_API_KEY")
    baidu_secret_key: Optional[str] = Field(default=None, alias="BAIDU_SECRET_KEY")
    baidu_token_url: str = Field(
        default="https://aip.baidubce.com/oauth/2.0/token", alias="BAIDU_TOKEN_URL"
    )
    baidu_ocr_url: str = Field(
        default="https://aip.baidubce.com/rest/2.0/ocr/v1/accurate_basic", alias="BAIDU_OCR_URL"
    )
    baidu_timeout_seconds: float = Field(default=10.0, alias="BAIDU_TIMEOUT_SECONDS")

    # Local OCR (Tesseract)
    local_ocr_enabled: bool = Field(default=True, alias="LOCAL_OCR_ENABLED")
    tesseract_path: Optional[str] = Field(default=None, alias="TESSERACT_PATH")
    tesseract_lang: str = Field(default="chi_sim", alias="TESSERACT_LANG")
    tesseract_auto_rotate: bool = Field(default=True, alias="TESSERACT_AUTO_ROTATE")

    # Image preprocessing
    transport_max_width: int = Field(default=800, alias="TRANSPORT_MAX_WIDTH")
    transport_max_height: int = Field(default=800, alias="TRANSPORT_MAX_HEIGHT")
    transport_quality: float = Field(default=0.8, alias="TRANSPORT_QUALITY")
    ocr_upscale: int = Field(default=2, alias="OCR_UPSCALE")
    ocr_threshold: int = Field(default=128, alias="OCR_THRESHOLD")

    # Monitoring
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")

    # Field extraction
    extra_brands: str = Field(default="", alias="TEABOOK_EXTRA_BRANDS")

    @property
    def cloud_ocr_configured(self) -> bool:
        """Cloud OCR needs both keys; missing keys disable it"""
        return self.cloud_ocr_enabled and bool(self.baidu_api_key and self.baidu_secret_key)

    @property
    def extra_brand_list(self) -> List[str]:
        """Comma-separated TEABOOK_EXTRA_BRANDS as a list"""
        return [brand.strip() for brand in self.extra_brands.split(",") if brand.strip()]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment"""
        valid_envs = ["development", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT must be one of {valid_envs}")
        return v.lower()

    @field_validator("transport_quality")
    @classmethod
    def validate_quality(cls, v):
        """JPEG quality is expressed as 0-1"""
        if not 0 < v <= 1:
            raise ValueError("TRANSPORT_QUALITY must be in (0, 1]")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
