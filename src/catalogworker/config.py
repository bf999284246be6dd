"""
Configuration for CatalogWorker.

Uses Pydantic for validation and environment loading.
"""

import os
from functools import lru_cache
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class SyncConfig(BaseModel):
    """Configuration for catalog reconciliation runs."""

    # Feed index
    index_ttl_sec: int = Field(default=3600, description="Feed index cache TTL (1 hour)")
    fragment_min_length: int = Field(
        default=3, description="Shortest part number accepted as a SKU suffix"
    )
    max_sku_fragments: int = Field(default=3, description="Trailing SKU fragments tried")
    use_reverse_index: bool = Field(
        default=True, description="Trigram index for part-number lookups instead of a scan"
    )

    # Catalog walk
    page_size: int = Field(default=250, description="Products per catalog page")
    page_delay_sec: float = Field(default=0.1, description="Pause between catalog pages")

    # Retries (catalog pages and mutation sub-steps)
    retry_max: int = Field(default=3, description="Max attempts per request")
    retry_base_delay: float = Field(
        default=1.0, description="Base delay for exponential backoff"
    )

    error_sample_size: int = Field(default=50, description="Errors kept on a run record")
    update_visibility: bool = Field(
        default=True, description="Set products ACTIVE/DRAFT from match results"
    )

    # Cost side-channel
    cost_metafield_namespace: str = Field(default="custom")
    cost_metafield_key: str = Field(default="cost")

    # Feed sources, tried in order: URL, explicit paths, first *.csv in dirs
    feed_url: str = Field(default="", description="Remote CSV feed URL")
    feed_paths: List[str] = Field(
        default_factory=lambda: ["data/feed.csv", "feed.csv"],
        description="Local CSV feed candidates",
    )
    feed_dirs: List[str] = Field(
        default_factory=lambda: ["data", "."], description="Directories searched for *.csv"
    )

    # Periodic runs
    schedule_cron: str = Field(default="0 */6 * * *", description="Auto sync cron expression")
    schedule_timezone: str = Field(default="America/New_York")


class ProgressConfig(BaseModel):
    """Progress persistence cadence: (cumulative limit, interval) tiers."""

    tiers: List[Tuple[Optional[int], int]] = Field(
        default_factory=lambda: [(1000, 100), (10000, 500), (None, 1000)]
    )


class WorkerConfig(BaseSettings):
    """Master configuration for CatalogWorker."""

    model_config = ConfigDict(
        env_prefix="",  # No prefix, use exact names
        env_file=".env",
        extra="ignore",
    )

    # Service identity
    service_name: str = Field(default="catalogworker")
    log_level: str = Field(default="INFO")

    # Shop admin API
    shop_domain: str = Field(default="", description="myshop.myshopify.com")
    admin_access_token: str = Field(default="", description="Admin API access token")
    admin_api_version: str = Field(default="2024-10")

    # Run records
    database_url: str = Field(default="", description="PostgreSQL URL, empty = in-memory")

    # Temporal
    temporal_host: str = Field(default="localhost:7233")
    task_queue: str = Field(default="catalog-sync")

    sync: SyncConfig = Field(default_factory=SyncConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        """Load configuration from environment variables."""
        defaults = SyncConfig()
        return cls(
            service_name=os.getenv("SERVICE_NAME", "catalogworker"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            shop_domain=os.getenv("SHOP_DOMAIN", ""),
            admin_access_token=os.getenv("SHOPIFY_ACCESS_TOKEN", ""),
            admin_api_version=os.getenv("SHOPIFY_API_VERSION", "2024-10"),
            database_url=os.getenv("DATABASE_URL", ""),
            temporal_host=os.getenv("TEMPORAL_HOST", "localhost:7233"),
            task_queue=os.getenv("TEMPORAL_TASK_QUEUE", "catalog-sync"),
            sync=SyncConfig(
                index_ttl_sec=int(os.getenv("INDEX_TTL_SEC", "3600")),
                page_size=int(os.getenv("SYNC_PAGE_SIZE", "250")),
                page_delay_sec=float(os.getenv("SYNC_PAGE_DELAY_SEC", "0.1")),
                retry_max=int(os.getenv("SYNC_RETRY_MAX", "3")),
                retry_base_delay=float(os.getenv("SYNC_RETRY_BASE_DELAY", "1.0")),
                error_sample_size=int(os.getenv("SYNC_ERROR_SAMPLE_SIZE", "50")),
                update_visibility=os.getenv("SYNC_UPDATE_VISIBILITY", "true").lower() == "true",
                use_reverse_index=os.getenv("SYNC_REVERSE_INDEX", "true").lower() == "true",
                feed_url=os.getenv("FEED_URL", ""),
                feed_paths=_split(os.getenv("FEED_PATHS", "")) or defaults.feed_paths,
                feed_dirs=_split(os.getenv("FEED_DIRS", "")) or defaults.feed_dirs,
                schedule_cron=os.getenv("AUTO_SYNC_SCHEDULE", "0 */6 * * *"),
                schedule_timezone=os.getenv("AUTO_SYNC_TIMEZONE", "America/New_York"),
            ),
        )


@lru_cache(maxsize=1)
def get_config() -> WorkerConfig:
    """Process-wide configuration, read from the environment once."""
    return WorkerConfig.from_env()
