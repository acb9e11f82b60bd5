"""AbokiFX parallel-market rates: structured selector scraping."""

from __future__ import annotations

from bs4 import BeautifulSoup

from market_sentinel.core.models import RawCandidate
from market_sentinel.sources.base import HtmlSource


class AbokiFxSource(HtmlSource):
    """Naira rates for USD and EUR pairs, quoted in NGN."""

    name = "abokifx"
    source = "abokifx.com"
    url = "https://abokifx.com/"

    def extract(self, soup: BeautifulSoup) -> list[RawCandidate]:
        candidates: list[RawCandidate] = []
        for row in soup.select(".rate, .currency-rate, [data-rate]"):
            pair_el = row.select_one(".pair, .currency")
            rate_el = row.select_one(".rate-value, .price")
            if pair_el is None or rate_el is None:
                continue
            pair = pair_el.get_text(strip=True)
            rate = rate_el.get_text(strip=True)
            if not pair or not rate:
                continue
            if "USD" not in pair and "EUR" not in pair:
                continue
            candidates.append(
                RawCandidate(
                    item_text=f"{pair} Exchange Rate",
                    price_text=rate,
                    currency_hint="NGN",
                )
            )
        return candidates
