from cardcatalog.models.card import CardPrinting, Face, pick_image
from cardcatalog.models.failure import (
    BulkDownloadError,
    DataIntegrityError,
    FailureDetail,
    FailureKind,
    KnownError,
    ManifestLookupError,
    PrintingNotFoundError,
    SearchRequestError,
    StoreShapeError,
    SyncAlreadyRunningError,
)
from cardcatalog.models.sync import BulkDataInfo, CatalogStats, SkippedRecord, SyncSummary

__all__ = [
    "BulkDataInfo",
    "BulkDownloadError",
    "CardPrinting",
    "CatalogStats",
    "DataIntegrityError",
    "Face",
    "FailureDetail",
    "FailureKind",
    "KnownError",
    "ManifestLookupError",
    "PrintingNotFoundError",
    "SearchRequestError",
    "SkippedRecord",
    "StoreShapeError",
    "SyncAlreadyRunningError",
    "SyncSummary",
    "pick_image",
]
