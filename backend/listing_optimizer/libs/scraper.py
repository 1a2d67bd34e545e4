"""Amazon product page extraction.

A ``ListingScraper`` owns one headless Chromium session. The page is loaded
with Playwright, then the rendered HTML is read with BeautifulSoup through
selector cascades: ordered lists of extractor functions where the first
non-empty result wins.

Known race: after DOMContentLoaded the scraper only waits a fixed settle
delay. Pages that render slower than that come back without a title and
surface as ``ExtractionError`` instead of a timeout.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from playwright.async_api import async_playwright, TimeoutError as PlaywrightTimeoutError

from listing_optimizer.libs.asin import AMAZON_DOMAINS, Region, product_url
from listing_optimizer.libs.config import ScraperSettings, get_scraper_settings
from listing_optimizer.libs.errors import (
    ExtractionError,
    ListingOptimizerError,
    ProductNotFoundError,
    ScrapeTimeoutError,
)
from listing_optimizer.libs.models import RawListing

logger = logging.getLogger(__name__)

MAX_BULLETS = 8
MIN_BULLET_LENGTH = 20
MIN_TITLE_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 50
DESCRIPTION_FALLBACK_BULLETS = 3

DEFAULT_BULLETS = ("Product features not available",)
DEFAULT_DESCRIPTION = "Product description not available"

NOT_FOUND_MARKERS = ("page not found", "404")
BARE_SITE_NAME = "Amazon"

BLOCKED_RESOURCE_TYPES = {"image", "stylesheet", "font", "media"}

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

TITLE_SELECTORS = [
    "#productTitle",
    "h1#title",
    "span#productTitle",
    "h1.product-title",
]

BULLET_SELECTORS = [
    "#feature-bullets ul li span.a-list-item",
    "#feature-bullets li span",
    "div#feature-bullets ul li",
    "#featurebullets_feature_div li span",
    "ul.a-unordered-list.a-vertical li span",
]

DESCRIPTION_SELECTORS = [
    "#productDescription",
    "div#productDescription p",
    "#feature-bullets + div",
    'div[data-feature-name="productDescription"]',
]


@dataclass
class ExtractedFields:
    title: str = ""
    bullets: List[str] = field(default_factory=list)
    description: str = ""


Extractor = Callable[[BeautifulSoup], Optional[object]]


def _clean_text(text: Optional[str]) -> str:
    return " ".join((text or "").split())


def _is_usable_bullet(text: str) -> bool:
    return len(text) > MIN_BULLET_LENGTH and "see more" not in text.lower()


def _first_text(selector: str) -> Extractor:
    def extract(soup: BeautifulSoup) -> Optional[str]:
        element = soup.select_one(selector)
        if element is None:
            return None
        return _clean_text(element.get_text(" ", strip=True)) or None
    return extract


def _filtered_texts(selector: str) -> Extractor:
    def extract(soup: BeautifulSoup) -> Optional[List[str]]:
        texts = [_clean_text(el.get_text(" ", strip=True)) for el in soup.select(selector)]
        texts = [t for t in texts if _is_usable_bullet(t)]
        return texts or None
    return extract


def _meta_description(soup: BeautifulSoup) -> Optional[str]:
    meta = soup.find("meta", attrs={"name": "description"})
    if meta is None:
        return None
    return _clean_text(meta.get("content")) or None


TITLE_EXTRACTORS: List[Extractor] = [_first_text(s) for s in TITLE_SELECTORS]
BULLET_EXTRACTORS: List[Extractor] = [_filtered_texts(s) for s in BULLET_SELECTORS]
DESCRIPTION_EXTRACTORS: List[Extractor] = [_first_text(s) for s in DESCRIPTION_SELECTORS]


def first_match(extractors: Sequence[Extractor], soup: BeautifulSoup):
    """Run extractors in order and return the first non-empty result."""
    for extract in extractors:
        result = extract(soup)
        if result:
            return result
    return None


def extract_listing_fields(html: str) -> ExtractedFields:
    """Apply the title, bullet and description cascades to rendered HTML."""
    soup = BeautifulSoup(html or "", "html.parser")

    title = first_match(TITLE_EXTRACTORS, soup) or ""
    bullets = list(first_match(BULLET_EXTRACTORS, soup) or [])[:MAX_BULLETS]

    description = first_match(DESCRIPTION_EXTRACTORS, soup) or ""
    if len(description) < MIN_DESCRIPTION_LENGTH:
        meta = _meta_description(soup)
        if meta:
            description = meta
    if not description and bullets:
        description = " ".join(bullets[:DESCRIPTION_FALLBACK_BULLETS])

    return ExtractedFields(title=title, bullets=bullets, description=description)


def build_raw_listing(asin: str, fields: ExtractedFields) -> RawListing:
    """Validate extracted fields and fill the sentinel defaults."""
    title = (fields.title or "").strip()
    if len(title) < MIN_TITLE_LENGTH:
        raise ExtractionError(
            f"Could not extract product title for ASIN {asin}. "
            "The ASIN may be invalid or the product page structure is different."
        )
    bullets = tuple(b for b in fields.bullets if b)[:MAX_BULLETS] or DEFAULT_BULLETS
    description = (fields.description or "").strip() or DEFAULT_DESCRIPTION
    return RawListing(asin=asin, title=title, bullets=bullets, description=description)


def site_name(region: Region) -> str:
    """Bare site name a region's storefront uses as its page title, e.g. ``Amazon.co.uk``."""
    host = urlparse(AMAZON_DOMAINS[region]).hostname or ""
    if host.startswith("www."):
        host = host[len("www."):]
    return host[:1].upper() + host[1:]


def is_not_found_title(page_title: Optional[str], region: Optional[Region] = None) -> bool:
    """True for error-page titles, or a title that is only the site name.

    Without a region any storefront's site name counts.
    """
    title = (page_title or "").strip()
    lowered = title.lower()
    if any(marker in lowered for marker in NOT_FOUND_MARKERS):
        return True
    regions = [region] if region is not None else list(Region)
    return title == BARE_SITE_NAME or title in {site_name(r) for r in regions}


class ListingScraper:
    """Async context manager around one Playwright browser session."""

    def __init__(self, settings: Optional[ScraperSettings] = None):
        self.settings = settings or get_scraper_settings()
        self._playwright = None
        self._browser = None
        self._context = None

    async def __aenter__(self):
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.settings.headless,
                args=BROWSER_ARGS,
            )
            self._context = await self._browser.new_context(
                viewport={"width": 1920, "height": 1080},
                user_agent=self.settings.user_agent,
                extra_http_headers={
                    "Accept-Language": self.settings.accept_language,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
                    "sec-ch-ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
                    "sec-ch-ua-mobile": "?0",
                    "sec-ch-ua-platform": '"Windows"',
                },
            )
            await self._context.route("**/*", self._handle_route)
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        for name, closer in (
            ("context", self._context and self._context.close),
            ("browser", self._browser and self._browser.close),
            ("playwright", self._playwright and self._playwright.stop),
        ):
            if not closer:
                continue
            try:
                await closer()
            except Exception as e:
                logger.warning("Failed to close %s: %s", name, e)
        self._context = None
        self._browser = None
        self._playwright = None

    async def _handle_route(self, route):
        """Abort non-essential resource types to cut page load time."""
        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    async def _load_page(self, url: str) -> Tuple[str, str]:
        """Navigate to ``url`` and return ``(page_title, html)``."""
        if self._context is None:
            raise RuntimeError("ListingScraper must be used as an async context manager")
        page = await self._context.new_page()
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.settings.navigation_timeout_ms,
            )
            if self.settings.settle_delay > 0:
                await asyncio.sleep(self.settings.settle_delay)
            return await page.title(), await page.content()
        finally:
            await page.close()

    async def scrape(self, asin: str, region: Region) -> RawListing:
        url = product_url(asin, region)
        logger.info("Fetching ASIN %s from Amazon %s: %s", asin, region.value, url)
        try:
            page_title, html = await self._load_page(url)
            if is_not_found_title(page_title, region):
                raise ProductNotFoundError(f"Product with ASIN {asin} not found on Amazon {region.value}")
            logger.info("Page loaded: %s", (page_title or "")[:60])

            fields = extract_listing_fields(html)
            listing = build_raw_listing(asin, fields)
        except ListingOptimizerError:
            raise
        except PlaywrightTimeoutError as e:
            raise ScrapeTimeoutError(
                f"Page load timeout for ASIN {asin} on Amazon {region.value}. Please try again."
            ) from e
        except Exception as e:
            raise ExtractionError(
                f"Failed to fetch product {asin} from Amazon {region.value}: {e}"
            ) from e

        logger.info(
            "Extracted ASIN %s: title=%r bullets=%d description=%d chars",
            asin, listing.title[:60], len(listing.bullets), len(listing.description),
        )
        return listing


async def scrape_product(asin: str, region: Region, settings: Optional[ScraperSettings] = None) -> RawListing:
    """Scrape one listing in its own browser session."""
    try:
        async with ListingScraper(settings) as scraper:
            return await scraper.scrape(asin, region)
    except ListingOptimizerError:
        raise
    except Exception as e:
        raise ExtractionError(f"Browser session failed for ASIN {asin} on Amazon {region.value}: {e}") from e
