"""
Vendor scraper implementations.

Each adapter fetches one vendor's listings and feeds them through the
shared pipeline; see base.BaseScraper for the common interface.
"""
from cardprices.services.ingestion.adapters.abugames import ABUGamesScraper
from cardprices.services.ingestion.adapters.cardkingdom import CardKingdomScraper
from cardprices.services.ingestion.adapters.cardkingdom_hotbuylist import CardKingdomHotBuylistScraper
from cardprices.services.ingestion.adapters.coolstuffinc import CoolStuffIncScraper

__all__ = [
    "ABUGamesScraper",
    "CardKingdomScraper",
    "CardKingdomHotBuylistScraper",
    "CoolStuffIncScraper",
]
