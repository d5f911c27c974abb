"""
Utility functions for fetching and parsing vendor pages.
"""
import asyncio
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import structlog
from bs4 import BeautifulSoup

from cardprices.core.config import settings

logger = structlog.get_logger()

RETRY_STATUSES = {429, 500, 502, 503, 504}

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


def parse_price(price_str: Any) -> Decimal | None:
    """
    Extract a decimal price from a vendor string.

    Examples:
        "$12.50" -> Decimal("12.50")
        "€15,99" -> Decimal("15.99")
        "1,234.56 USD" -> Decimal("1234.56")
    """
    if price_str is None:
        return None
    if isinstance(price_str, (int, float, Decimal)):
        return Decimal(str(price_str))

    price_str = re.sub(r"[^\d.,]", "", str(price_str))
    if not price_str:
        return None

    # Handle European format (comma as decimal)
    if "," in price_str and "." in price_str:
        if price_str.rindex(",") > price_str.rindex("."):
            # Comma is decimal (e.g., "1.234,56")
            price_str = price_str.replace(".", "").replace(",", ".")
        else:
            # Dot is decimal (e.g., "1,234.56")
            price_str = price_str.replace(",", "")
    elif "," in price_str:
        if price_str.count(",") == 1 and len(price_str.split(",")[1]) != 3:
            price_str = price_str.replace(",", ".")
        else:
            price_str = price_str.replace(",", "")

    try:
        return Decimal(price_str)
    except InvalidOperation:
        logger.debug("Failed to parse price", price_str=price_str)
        return None


def round_price(value: Decimal) -> Decimal:
    """Round to cents."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def price_ratio(buy_price: Decimal, sell_price: Decimal | None) -> float | None:
    """Buy price as a percentage of sell price, None without a sell price."""
    if not sell_price or sell_price <= 0:
        return None
    return float(buy_price / sell_price * 100)


def decorate_url(url: str, params: dict[str, str]) -> str:
    """Add query parameters to a URL, keeping the ones already there."""
    if not params:
        return url
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(params)
    return urlunsplit(parts._replace(query=urlencode(query)))


def partner_params(partner: str) -> dict[str, str]:
    """Affiliate parameters used by most vendors."""
    if not partner:
        return {}
    return {
        "partner": partner,
        "utm_source": partner,
        "utm_medium": "affiliate",
        "utm_campaign": partner,
    }


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    max_retries: int | None = None,
    backoff_factor: float | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    Make a request, retrying throttled, failing or unreachable upstreams.

    Handles 429 and 5xx responses and transport errors with exponential
    backoff. Any other HTTP error is raised immediately.

    Raises:
        httpx.HTTPStatusError: On a non-retryable status or when retries run out.
        httpx.TransportError: When the upstream stays unreachable.
    """
    if max_retries is None:
        max_retries = settings.http_max_retries
    if backoff_factor is None:
        backoff_factor = settings.http_backoff_factor

    for attempt in range(max_retries + 1):
        last_attempt = attempt == max_retries
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if last_attempt:
                raise
            wait_time = backoff_factor * (2 ** attempt)
            logger.warning("Request failed, retrying", url=url, error=str(e), wait_seconds=wait_time)
            await asyncio.sleep(wait_time)
            continue

        if response.status_code in RETRY_STATUSES and not last_attempt:
            wait_time = backoff_factor * (2 ** attempt)
            logger.warning(
                "Upstream busy, retrying",
                url=url,
                status=response.status_code,
                attempt=attempt + 1,
                wait_seconds=wait_time,
            )
            await asyncio.sleep(wait_time)
            continue

        response.raise_for_status()
        return response

    # Unreachable: the last attempt either returns or raises
    raise RuntimeError("retry loop exited without a response")


async def fetch_json(client: httpx.AsyncClient, url: str, **kwargs: Any) -> Any:
    """Fetch and decode a JSON document."""
    response = await request_with_retry(client, "GET", url, **kwargs)
    return response.json()


async def fetch_html(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str] | None = None,
    method: str = "GET",
    **kwargs: Any,
) -> BeautifulSoup:
    """Fetch and parse an HTML page. Forms can be submitted with method="POST"."""
    request_headers = dict(BROWSER_HEADERS)
    if headers:
        request_headers.update(headers)
    response = await request_with_retry(client, method, url, headers=request_headers, **kwargs)
    return BeautifulSoup(response.text, "html.parser")
