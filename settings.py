"""
Runtime configuration for the catalog ingestion service.

Every setting can be overridden through an environment variable prefixed with
``CATALOG_`` (e.g. ``CATALOG_STORE_BACKEND=supabase``) or a local ``.env`` file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    """Service configuration."""

    model_config = SettingsConfigDict(env_prefix="CATALOG_", env_file=".env", extra="ignore")

    # Source site
    source_domain: str = Field(
        default="gsmarena.com",
        description="Only pages on this domain (or its subdomains) are scraped",
    )
    default_category: str = Field(default="Phones", description="Category assigned to new submissions")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="Browser user-agent sent upstream")
    page_timeout: float = Field(default=10.0, description="Timeout in seconds for the spec page fetch")
    image_timeout: float = Field(default=30.0, description="Timeout in seconds for each image fetch")
    relocation_concurrency: int = Field(
        default=4,
        ge=1,
        le=8,
        description="Images relocated in parallel per ingestion (1 = sequential)",
    )
    keep_unmapped_fields: bool = Field(
        default=True,
        description="Keep spec rows without a field mapping in the extra_fields side map",
    )

    # Record store
    store_backend: Literal["memory", "json", "supabase"] = Field(default="json")
    store_path: Path = Field(default=Path("data/catalog.json"))
    submissions_table: str = Field(default="scraped_data")
    catalog_table: str = Field(default="gadgets")

    # Asset store
    asset_backend: Literal["local", "supabase"] = Field(default="local")
    asset_path: Path = Field(default=Path("data/assets"))
    asset_base_url: str = Field(default="http://localhost:8000/assets")
    asset_bucket: str = Field(default="troveassets")
    asset_prefix: str = Field(default="images")

    # Supabase credentials (required by the supabase backends only)
    supabase_url: str | None = Field(default=None)
    supabase_key: str | None = Field(default=None)

    # HTTP API
    cors_origins: list[str] = Field(default=["http://localhost:3000"])

    log_level: str = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
