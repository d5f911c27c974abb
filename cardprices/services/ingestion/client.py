"""
Scraper client.

Groups several scrapers under their short codes and loads them together.
"""
import structlog

from cardprices.services.ingestion.base import BaseScraper

logger = structlog.get_logger()


class ScraperNotFoundError(LookupError):
    """No scraper is registered under the requested short code."""


class ScraperClient:
    """
    Collection of scrapers keyed by shorthand.

    A scraper registered as seller only (or vendor only) has its other side
    disabled in its own config, so neither load() nor the scraper itself
    fetches it.

    Usage:
        client = ScraperClient()
        client.register(CardKingdomScraper(matcher=index))
        client.register_vendor(ABUGamesScraper(matcher=index))
        await client.load()
        ck = client.scraper_by_name("CK")
    """

    def __init__(self):
        self._scrapers: dict[str, BaseScraper] = {}
        self._seller_disabled: dict[str, bool] = {}
        self._vendor_disabled: dict[str, bool] = {}

    def register(self, scraper: BaseScraper) -> None:
        key = scraper.shorthand
        self._scrapers[key] = scraper
        self._seller_disabled[key] = False
        self._vendor_disabled[key] = False

    def register_seller(self, scraper: BaseScraper) -> None:
        """Register only the inventory side of a scraper."""
        self.register(scraper)
        scraper.config.disable_buylist = True
        self._vendor_disabled[scraper.shorthand] = True

    def register_vendor(self, scraper: BaseScraper) -> None:
        """Register only the buylist side of a scraper."""
        self.register(scraper)
        scraper.config.disable_retail = True
        self._seller_disabled[scraper.shorthand] = True

    def scrapers(self) -> list[BaseScraper]:
        return list(self._scrapers.values())

    def sellers(self) -> list[BaseScraper]:
        return [
            scraper for key, scraper in self._scrapers.items()
            if scraper.is_seller and not self._seller_disabled[key]
        ]

    def vendors(self) -> list[BaseScraper]:
        return [
            scraper for key, scraper in self._scrapers.items()
            if scraper.is_vendor and not self._vendor_disabled[key]
        ]

    def scraper_by_name(self, shorthand: str) -> BaseScraper:
        """
        Raises:
            ScraperNotFoundError: If nothing is registered under shorthand.
        """
        try:
            return self._scrapers[shorthand]
        except KeyError:
            raise ScraperNotFoundError(f"scraper not found: {shorthand}") from None

    async def load(self) -> None:
        """
        Load every enabled side of every registered scraper, in order.

        Raises:
            ScrapeError: The first load failure; later scrapers are not loaded.
        """
        for key, scraper in self._scrapers.items():
            if scraper.is_seller and not self._seller_disabled[key]:
                await scraper.inventory()
            if scraper.is_vendor and not self._vendor_disabled[key]:
                await scraper.buylist()
            logger.info("Scraper loaded", scraper=key)

    async def close(self) -> None:
        for scraper in self._scrapers.values():
            await scraper.close()
