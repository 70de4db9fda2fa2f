"""
Configuration settings for the repair service backend
Uses pydantic-settings for validation and env vars
"""
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# load env vars
load_dotenv()

MB = 1024 * 1024


class RepairApiConfig(BaseSettings):
    # marketplace node API (boat repairs, payments)
    model_config = SettingsConfigDict(env_prefix="REPAIR_API_")

    url: str = Field(default="http://localhost:5001")
    timeout: float = 30.0

    @field_validator('url')
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")


class CloudinaryConfig(BaseSettings):
    """Cloudinary object storage used for repair photos/videos."""
    model_config = SettingsConfigDict(env_prefix="CLOUDINARY_")

    cloud_name: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    base_url: str = "https://api.cloudinary.com/v1_1"
    upload_folder: str = "boat-repairs"
    upload_tags: str = "boat-repair"
    timeout: float = 120.0  # videos can take a while

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)


class CalendlyConfig(BaseSettings):
    """Calendly scheduling widget + REST API."""
    model_config = SettingsConfigDict(env_prefix="CALENDLY_")

    token: Optional[str] = None
    api_base: str = "https://api.calendly.com"
    widget_url: str = "https://calendly.com/abigunhettiarachchi/30min?primary_color=0d9488"
    timeout: float = 15.0


class UploadLimitsConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="UPLOAD_")

    max_image_mb: int = 10
    max_video_mb: int = 50

    @property
    def max_image_bytes(self) -> int:
        return self.max_image_mb * MB

    @property
    def max_video_bytes(self) -> int:
        return self.max_video_mb * MB


class PaymentConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PAYMENT_")

    currency: str = "lkr"


class WizardConfig(BaseSettings):
    """Wizard session settings."""
    model_config = SettingsConfigDict(env_prefix="WIZARD_")

    max_sessions: int = 500
    # in-memory image previews kept per session
    max_preview_mb: int = 25

    @property
    def max_preview_bytes(self) -> int:
        return self.max_preview_mb * MB


class ServerConfig(BaseSettings):
    """Server configuration for FastAPI."""

    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=8000, validation_alias="API_PORT")
    api_reload: bool = Field(default=True, validation_alias="API_RELOAD")
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class DevelopmentConfig(BaseSettings):
    """Development and testing settings."""

    debug: bool = Field(default=False, validation_alias="DEBUG")
    testing: bool = Field(default=False, validation_alias="TESTING")


class RepairServiceConfig(BaseSettings):
    """Main configuration class combining all settings."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    repair_api: RepairApiConfig = RepairApiConfig()
    cloudinary: CloudinaryConfig = CloudinaryConfig()
    calendly: CalendlyConfig = CalendlyConfig()
    uploads: UploadLimitsConfig = UploadLimitsConfig()
    payment: PaymentConfig = PaymentConfig()
    wizard: WizardConfig = WizardConfig()
    server: ServerConfig = ServerConfig()
    logging: LoggingConfig = LoggingConfig()
    dev: DevelopmentConfig = DevelopmentConfig()


# Global configuration instance
config = RepairServiceConfig()
