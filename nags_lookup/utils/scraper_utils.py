"""
Scraper Utility Module

Provides common utilities for distributor portal scraping:
- Stealth browser sessions (PGW and other browser-only portals)
- Human-like delays and typing
- Session checks
- Price / feature normalization shared by all adapters
"""

import logging
import asyncio
import random
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Tuple

from playwright.async_api import async_playwright, BrowserContext, Page

from nags_lookup.core.exceptions import DistributorError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Distributor option codes -> canonical feature tags
FEATURE_CODES: Dict[str, str] = {
    "RS": "rain_sensor",
    "HUD": "hud",
    "HTD": "heated",
    "ANT": "antenna",
    "ADAS": "adas",
}


@asynccontextmanager
async def stealth_browser(
    storage_state: Optional[Dict[str, Any]] = None,
    headless: bool = True
) -> AsyncIterator[Tuple[BrowserContext, Page]]:
    """
    Launch a browser with stealth settings for the duration of the block.

    Args:
        storage_state: Cookies/local storage from a previous session to reuse a login
        headless: Run without a window

    Raises:
        DistributorError: If the browser cannot be started
    """
    try:
        from playwright_stealth import Stealth
    except ImportError as e:
        logger.error("playwright-stealth not installed. Run: pip install playwright-stealth")
        raise DistributorError("browser", f"missing dependency: {e}")

    async with async_playwright() as p:
        # Launch with anti-detection args
        browser = await p.chromium.launch(
            headless=headless,
            args=[
                '--disable-blink-features=AutomationControlled',
                '--disable-dev-shm-usage',
                '--no-sandbox',
                '--disable-infobars',
            ]
        )
        try:
            # Create context with realistic settings
            context = await browser.new_context(
                viewport={'width': 1920, 'height': 1080},
                user_agent=USER_AGENT,
                locale='en-US',
                timezone_id='America/Los_Angeles',
                storage_state=storage_state,
            )
            await Stealth().apply_stealth_async(context)
            page = await context.new_page()

            logger.info("Stealth browser launched successfully")
            yield context, page
        finally:
            await browser.close()


async def human_delay(min_ms: int = 500, max_ms: int = 2000):
    """Add human-like random delay between actions"""
    delay = random.randint(min_ms, max_ms)
    await asyncio.sleep(delay / 1000)


async def human_type(page: Page, selector: str, text: str, delay_ms: int = 50):
    """Type text with human-like delays between keystrokes"""
    await page.click(selector)
    await human_delay(200, 500)

    for char in text:
        await page.keyboard.type(char)
        await asyncio.sleep(random.randint(30, delay_ms) / 1000)


async def check_session_status(page: Page, site: Literal['mygrant', 'pgw']) -> bool:
    """
    Check if the page shows a logged-in portal.

    Returns:
        True if logged in, False otherwise
    """
    selectors = SITE_CONFIG.get(site, {}).get('login_indicators', [])

    for selector in selectors:
        try:
            if await page.is_visible(selector):
                logger.info(f"{site.upper()}: Session valid (found {selector})")
                return True
        except Exception:
            continue

    logger.warning(f"{site.upper()}: Session appears invalid or expired")
    return False


async def safe_navigate(page: Page, url: str, wait_until: str = "domcontentloaded", timeout_ms: int = 30000) -> bool:
    """
    Safely navigate to a URL with error handling.

    Returns:
        True if navigation successful, False otherwise
    """
    try:
        await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        await human_delay(500, 1500)
        return True
    except Exception as e:
        logger.error(f"Navigation to {url} failed: {e}")
        return False


async def first_visible(page: Page, selectors: List[str]) -> Optional[str]:
    """Return the first selector currently visible on the page"""
    for selector in selectors:
        try:
            if await page.is_visible(selector):
                return selector
        except Exception:
            continue
    return None


async def take_debug_screenshot(page: Page, name: str):
    """Take a screenshot for debugging purposes"""
    try:
        filename = f"{name}.png"
        await page.screenshot(path=filename)
        logger.info(f"Debug screenshot saved: {filename}")
    except Exception as e:
        logger.error(f"Screenshot failed: {e}")


def parse_price_to_cents(value: Any) -> Optional[int]:
    """
    Convert a distributor price ("$123.45", "1,234.5", 45.5) to integer cents.
    Returns None when no positive amount can be read.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        cents = round(float(value) * 100)
        return cents if cents > 0 else None

    match = re.search(r'\d+(?:\.\d+)?', str(value).replace(',', ''))
    if not match:
        return None
    cents = round(float(match.group()) * 100)
    return cents if cents > 0 else None


def parse_features(raw: Any) -> List[str]:
    """Split a distributor option string ("RS, HTD ADAS") into ordered feature tags"""
    if isinstance(raw, (list, tuple)):
        tokens = [str(t) for t in raw]
    else:
        tokens = re.split(r'[\s,]+', str(raw or ''))

    features: List[str] = []
    for token in tokens:
        token = token.strip()
        if not token:
            continue
        feature = FEATURE_CODES.get(token.upper(), token.lower())
        if feature not in features:
            features.append(feature)
    return features


# Site-specific configurations
SITE_CONFIG = {
    'mygrant': {
        'login_path': '/api/login',
        'lookup_path': '/api/vin-lookup',
    },
    'pgw': {
        'login_path': '/login',
        'search_path': '/catalog/vin',
        'login_indicators': [
            "#vin-search",
            ".account-menu",
            "a[href*='logout']",
        ],
    },
}


def get_site_config(site: str) -> dict:
    """Get configuration for a specific site"""
    return SITE_CONFIG.get(site, {})
