"""
Ingestion service for vendor price collection.

Provides the scraper interface, the shared fetch/aggregate pipeline, the
record store and the vendor implementations.
"""
from cardprices.services.ingestion.base import (
    BaseScraper,
    LazyLoad,
    LoadState,
    ScrapeError,
    ScraperConfig,
    ScraperInfo,
)
from cardprices.services.ingestion.client import ScraperClient, ScraperNotFoundError
from cardprices.services.ingestion.pipeline import (
    Aggregator,
    MergePolicy,
    PipelineStats,
    ProgressReporter,
    ScrapeResult,
    WorkSource,
    run_pipeline,
)
from cardprices.services.ingestion.records import (
    BuylistEntry,
    BuylistRecord,
    DuplicateEntryError,
    InvalidEntryError,
    InventoryEntry,
    InventoryRecord,
    QuantityMerge,
    RecordError,
    RecordFrozenError,
)
from cardprices.services.ingestion.registry import (
    get_available_scrapers,
    get_scraper,
    register_scraper,
)

__all__ = [
    "BaseScraper",
    "LazyLoad",
    "LoadState",
    "ScrapeError",
    "ScraperConfig",
    "ScraperInfo",
    "ScraperClient",
    "ScraperNotFoundError",
    "Aggregator",
    "MergePolicy",
    "PipelineStats",
    "ProgressReporter",
    "ScrapeResult",
    "WorkSource",
    "run_pipeline",
    "BuylistEntry",
    "BuylistRecord",
    "DuplicateEntryError",
    "InvalidEntryError",
    "InventoryEntry",
    "InventoryRecord",
    "QuantityMerge",
    "RecordError",
    "RecordFrozenError",
    "get_available_scrapers",
    "get_scraper",
    "register_scraper",
]
