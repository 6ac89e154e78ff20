from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class BulkDataInfo:
    """
    One dataset descriptor from the upstream bulk-data manifest.

    Attributes:
        type: Selector name (e.g., "default_cards", "oracle_cards")
        name: Human-readable dataset name
        description: Upstream description
        download_uri: Where the dataset JSON can be fetched
        size: Uncompressed size in bytes
        updated_at: When upstream last regenerated the dataset
    """

    type: str
    name: str
    description: str
    download_uri: str
    size: int
    updated_at: datetime

    @property
    def size_mb(self) -> float:
        return self.size / (1024 * 1024)


@dataclass(frozen=True, slots=True)
class SkippedRecord:
    """A raw record that could not be parsed into a printing."""

    name: str
    external_id: str
    reason: str


@dataclass(frozen=True, slots=True)
class CatalogStats:
    """Operational counts over the stored catalog, reported after each sync."""

    total: int = 0
    distinct_groups: int = 0
    multi_faced: int = 0
    with_finishes: int = 0
    arena: int = 0
    mtgo: int = 0


@dataclass
class SyncSummary:
    """Outcome of one ingestion run."""

    bulk_type: str
    parsed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: list[SkippedRecord] = field(default_factory=list)
    stats: CatalogStats | None = None
    dry_run: bool = False

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)
