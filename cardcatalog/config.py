from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "CardCatalog"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/cardcatalog"

    # Upstream provider
    scryfall_bulk_api: str = "https://api.scryfall.com/bulk-data"
    user_agent: str = "CardCatalog/1.0"
    request_timeout: float = 30.0
    # Bulk files are several hundred MB
    download_timeout: float = 600.0

    # Ingestion
    data_dir: Path = Path("data")
    default_bulk_type: str = "default_cards"
    sync_batch_size: int = 1000

    # Search
    search_default_page_size: int = 20
    search_max_page_size: int = 100


settings = Settings()


# =============================================================================
# IMAGE SELECTION
# =============================================================================

# Preferred image size when a single URL is needed, first available wins
IMAGE_PREFERENCE = ("normal", "large", "small", "png", "border_crop", "art_crop")

