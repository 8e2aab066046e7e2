"""Configuration management for the try-on canvas service."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class SegmentationConfig(BaseModel):
    """Person segmentation model settings."""
    backend: str = "rembg"
    model_name: str = "u2net_human_seg"
    threshold: float | None = Field(default=0.7, ge=0.0, le=1.0)  # None = keep soft mask
    preload: bool = True  # Start loading the model at application startup


class ImageConfig(BaseModel):
    """Upload bounds for decoded images."""
    max_dimension: int = 2048  # Longer side, in pixels
    max_upload_bytes: int = 10 * 1024 * 1024
    fetch_timeout: float = 30.0  # Clothing image download timeout (seconds)
    cache_size: int = 32  # Decoded clothing images kept in memory
    static_dir: str | None = None  # Root for site-relative clothing paths ("/clothing/tee.png")


class S3Config(BaseModel):
    """Blob storage settings."""
    bucket_name: str | None = None
    region: str = "us-east-1"
    access_key_id: str | None = None
    secret_access_key: str | None = None
    public_base_url: str | None = None  # Overrides the default bucket URL

    @property
    def base_url(self) -> str:
        if self.public_base_url:
            return self.public_base_url.rstrip("/")
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com"


class SupabaseConfig(BaseModel):
    """Document store and auth provider settings."""
    url: str = ""
    anon_key: str = ""
    service_role_key: str = ""
    clothing_table: str = "clothing_items"
    history_table: str = "try_on_history"


class TryOnConfig(BaseSettings):
    """Main service configuration."""

    log_level: str = "INFO"
    admin_emails: list[str] = Field(default_factory=list)  # Empty = any signed-in user

    # Sub-configs
    segmentation: SegmentationConfig = Field(default_factory=SegmentationConfig)
    images: ImageConfig = Field(default_factory=ImageConfig)
    s3: S3Config = Field(default_factory=S3Config)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)

    class Config:
        env_file = ".env"
        env_prefix = "TRYON_"
        env_nested_delimiter = "__"
        extra = "ignore"


def load_config() -> TryOnConfig:
    """Load configuration from environment and defaults."""
    return TryOnConfig()
