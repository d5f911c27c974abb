"""
cardprices - concurrent vendor price scraping for Magic: The Gathering cards.
"""
__version__ = "0.1.0"
