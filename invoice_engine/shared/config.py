"""Shared configuration management for the invoice engine.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_AI_PROVIDER=openai
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    service_name: str = Field(
        default="invoice-engine",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # AI enhancement configuration
    ai_provider: Literal["none", "openai", "azure", "gemini"] = Field(
        default="none",
        description="AI enhancement provider: none (heuristics only), openai, azure, gemini",
    )
    ai_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for a single AI provider request",
        gt=0,
    )
    ai_max_tokens: int = Field(
        default=1000,
        description="Maximum completion tokens requested from the AI provider",
        gt=0,
    )

    # OpenAI (for ai_provider="openai")
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key (use env var APP_OPENAI_API_KEY)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used for extraction",
    )

    # Azure OpenAI (for ai_provider="azure")
    azure_api_key: str = Field(
        default="",
        description="Azure OpenAI API key (use env var APP_AZURE_API_KEY)",
    )
    azure_endpoint: str = Field(
        default="",
        description="Azure OpenAI resource endpoint, e.g. https://my-resource.openai.azure.com",
    )
    azure_deployment_name: str = Field(
        default="",
        description="Azure OpenAI chat deployment name",
    )
    azure_api_version: str = Field(
        default="2024-02-01",
        description="Azure OpenAI REST API version",
    )

    # Google Gemini (for ai_provider="gemini")
    gemini_api_key: str = Field(
        default="",
        description="Gemini API key (use env var APP_GEMINI_API_KEY)",
    )
    gemini_model: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model used for extraction",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Generative Language API base URL",
    )

    # Text acquisition (OCR) configuration
    ocr_provider: Literal["ocrspace", "tesseract", "auto"] = Field(
        default="auto",
        description=(
            "Text acquisition strategy: ocrspace (server-side API), tesseract (local), "
            "auto (ocrspace with tesseract fallback)"
        ),
    )
    ocrspace_api_key: str = Field(
        default="helloworld",
        description="OCR.space API key (the default is the public free-tier key)",
    )
    ocrspace_url: str = Field(
        default="https://api.ocr.space/parse/image",
        description="OCR.space parse endpoint",
    )
    ocrspace_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout for OCR.space requests",
        gt=0,
    )
    tesseract_language: str = Field(
        default="eng",
        description="Tesseract language code",
    )

    # Pipeline
    processing_timeout_seconds: float = Field(
        default=300.0,
        description="Upper bound for one invoice pipeline run; exceeded runs are marked failed",
        gt=0,
    )
    max_upload_size_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted upload size",
        gt=0,
    )

    # Storage configuration (S3-compatible object storage)
    storage_enabled: bool = Field(
        default=False,
        description="Persist invoices and logs in S3-compatible storage (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="invoices",
        description="Bucket holding invoice records and processing logs",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
