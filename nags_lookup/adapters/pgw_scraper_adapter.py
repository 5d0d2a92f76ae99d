"""
PGW Auto Glass Scraper Adapter - Stealth Mode Implementation

The PGW dealer catalog has no API; parts are read off the VIN search
results table with a stealth browser. The login is kept between calls
as Playwright storage state (cookies) until the session expires.
"""

import logging
from typing import Any, Dict, List, Optional

from nags_lookup.adapters.distributor_adapter_interface import BaseDistributorAdapter
from nags_lookup.core.config import settings
from nags_lookup.core.exceptions import DistributorAuthError, DistributorError
from nags_lookup.schemas.lookup import GlassPartResult, GlassPosition, PartPrice, VehicleInfo
from nags_lookup.utils.scraper_utils import (
    check_session_status,
    first_visible,
    get_site_config,
    human_delay,
    human_type,
    parse_features,
    parse_price_to_cents,
    safe_navigate,
    stealth_browser,
    take_debug_screenshot,
)

logger = logging.getLogger(__name__)

USERNAME_SELECTORS = ["#username", "input[name='username']", "#email"]
PASSWORD_SELECTORS = ["#password", "input[name='password']", "input[type='password']"]
SUBMIT_SELECTORS = ["button[type='submit']", "#login-button", "input[type='submit']"]
RESULT_ROWS = "table.parts-results tbody tr"

# Reads each result row into a plain dict keyed by the cell's data-field
EXTRACT_ROWS_JS = """
rows => rows.map(row => {
    const record = {};
    row.querySelectorAll('[data-field]').forEach(cell => {
        record[cell.getAttribute('data-field')] = cell.innerText.trim();
    });
    return record;
})
"""


class PGWScraperAdapter(BaseDistributorAdapter):
    """
    PGW implementation using a stealth browser.
    """

    def __init__(self, credential_repository=None, headless: bool = True, **kwargs):
        kwargs.setdefault("enabled", settings.ENABLE_PGW_SCRAPER)
        kwargs.setdefault("base_url", settings.PGW_BASE_URL)
        super().__init__(name="pgw", credential_repository=credential_repository, **kwargs)
        self.headless = headless
        self.storage_state: Optional[Dict[str, Any]] = None
        self._config = get_site_config("pgw")

    def invalidate_session(self):
        super().invalidate_session()
        self.storage_state = None

    async def login(self, username: str, password: str) -> Optional[str]:
        async with stealth_browser(headless=self.headless) as (context, page):
            if not await safe_navigate(page, f"{self.base_url}{self._config['login_path']}", timeout_ms=int(self.timeout * 1000)):
                raise DistributorError(self.name, "login page unreachable")

            user_sel = await first_visible(page, USERNAME_SELECTORS)
            pass_sel = await first_visible(page, PASSWORD_SELECTORS)
            submit_sel = await first_visible(page, SUBMIT_SELECTORS)
            if not (user_sel and pass_sel and submit_sel):
                await take_debug_screenshot(page, "pgw_login_form")
                raise DistributorAuthError(self.name, "login form not found")

            await human_type(page, user_sel, username)
            await human_type(page, pass_sel, password)
            await human_delay(300, 800)
            await page.click(submit_sel)
            await human_delay(1500, 3000)

            if not await check_session_status(page, "pgw"):
                await take_debug_screenshot(page, "pgw_login_fail")
                raise DistributorAuthError(self.name, "login rejected")

            self.storage_state = await context.storage_state()

        cookies = self.storage_state.get("cookies") or []
        return cookies[0]["value"] if cookies else "browser-session"

    async def _fetch_parts(self, vehicle: VehicleInfo, positions: List[GlassPosition]) -> List[GlassPartResult]:
        url = f"{self.base_url}{self._config['search_path']}?vin={vehicle.vin}"

        async with stealth_browser(storage_state=self.storage_state, headless=self.headless) as (context, page):
            if not await safe_navigate(page, url, timeout_ms=int(self.timeout * 1000)):
                raise DistributorError(self.name, "search page unreachable")

            if self.session_token and not await check_session_status(page, "pgw"):
                self.invalidate_session()
                raise DistributorAuthError(self.name, "session expired")

            rows = await page.eval_on_selector_all(RESULT_ROWS, EXTRACT_ROWS_JS)
            if self.session_token:
                self.storage_state = await context.storage_state()

        logger.info(f"PGW: Scraped {len(rows)} result row(s) for {vehicle.vin}")
        return [part for part in (self._normalize_row(row) for row in rows) if part]

    def _normalize_row(self, row: Dict[str, str]) -> Optional[GlassPartResult]:
        """Map one scraped results-table row onto GlassPartResult"""
        nags_number = (row.get("nags") or row.get("part") or "").strip()
        if not nags_number:
            return None

        cost = parse_price_to_cents(row.get("price"))
        fitment = (row.get("fitment") or "").lower()

        return GlassPartResult(
            nags_part_number=nags_number,
            nags_part_number_alt=(row.get("alt") or "").strip() or None,
            glass_position=self.map_position(row.get("position") or row.get("description")),
            features=parse_features(row.get("options") or ""),
            price=PartPrice(cost=cost, source=self.name) if cost else None,
            # PGW marks unconfirmed fitments as "possible"
            confidence=70 if "possible" in fitment else None,
        )
