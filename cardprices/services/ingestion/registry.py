"""
Scraper registry.

Provides a centralized way to look up and build scrapers by slug.

Scrapers are never cached: each one owns an HTTP client bound to the event
loop it was created in.
"""
import structlog

from cardprices.services.ingestion.adapters import (
    ABUGamesScraper,
    CardKingdomHotBuylistScraper,
    CardKingdomScraper,
    CoolStuffIncScraper,
)
from cardprices.services.ingestion.base import BaseScraper

logger = structlog.get_logger()

# Registry of available scrapers
_SCRAPER_REGISTRY: dict[str, type[BaseScraper]] = {
    CardKingdomScraper.slug: CardKingdomScraper,
    CardKingdomHotBuylistScraper.slug: CardKingdomHotBuylistScraper,
    ABUGamesScraper.slug: ABUGamesScraper,
    CoolStuffIncScraper.slug: CoolStuffIncScraper,
}


def register_scraper(slug: str, scraper_class: type[BaseScraper]) -> None:
    """
    Register a new scraper type.

    Args:
        slug: Unique identifier for the scraper.
        scraper_class: The scraper class to register.
    """
    _SCRAPER_REGISTRY[slug.lower()] = scraper_class
    logger.info("Registered scraper", slug=slug, scraper=scraper_class.__name__)


def get_scraper(slug: str, **kwargs) -> BaseScraper:
    """
    Build a scraper by slug.

    Args:
        slug: Scraper identifier.
        **kwargs: Passed to the scraper constructor (config, matcher, log_callback, client).

    Returns:
        Scraper instance.

    Raises:
        ValueError: If slug is not registered.
    """
    slug = slug.lower()
    if slug not in _SCRAPER_REGISTRY:
        raise ValueError(f"Unknown scraper: {slug}. Available: {list(_SCRAPER_REGISTRY.keys())}")
    return _SCRAPER_REGISTRY[slug](**kwargs)


def get_available_scrapers() -> list[str]:
    """Get list of available scraper slugs."""
    return list(_SCRAPER_REGISTRY.keys())
