"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # App
    app_name: str = "AnyChange AI"
    app_env: str = "development"  # "development", "production" or "test"
    app_version: str = "0.1.0"
    port: int = 8000

    # Supabase storage
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_storage_bucket: str = "documents"
    signed_url_ttl_seconds: int = 3600

    # OCR
    ocr_provider: str = "tesseract"  # "tesseract" or "mistral"
    tesseract_languages: str = "eng"
    tesseract_dpi: int = 200
    tesseract_oem: int = 3
    tesseract_psm: int = 3
    mistral_api_key: Optional[str] = None
    mistral_api_url: str = "https://api.mistral.ai/v1"
    mistral_ocr_model: str = "mistral-ocr-latest"
    ocr_request_timeout_seconds: float = 90.0

    # File limits
    max_file_size: int = 10 * 1024 * 1024
    max_pages: int = 10
    allowed_file_types: str = "pdf,jpg,jpeg,png"

    # Job processing
    job_timeout_seconds: float = 120.0
    job_cleanup_delay_seconds: float = 300.0

    debug_logging: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def ocr_configured(self) -> bool:
        provider = self.ocr_provider.strip().lower()
        if provider == "mistral":
            return bool(self.mistral_api_key)
        return provider == "tesseract"

    @property
    def allowed_types(self) -> List[str]:
        return [t.strip().lower() for t in self.allowed_file_types.split(",") if t.strip()]


settings = Settings()
