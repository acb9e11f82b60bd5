"""NNPC announcements: fuel prices mentioned in body text."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

from market_sentinel.core.models import RawCandidate
from market_sentinel.sources.base import HtmlSource

FUEL_KEYWORDS = ("petrol", "fuel", "pms", "diesel", "kerosene")

_FUEL_PRICE = re.compile(
    r"(₦\s?[\d,]+(?:\.\d+)?|â‚¦[\d,]+|\bN[\d,]+(?:\.\d+)?|\d+(?:,\d{3})*\s*naira)",
    re.IGNORECASE,
)


class NnpcSource(HtmlSource):
    """One candidate per (paragraph, fuel keyword) pair that quotes a price.

    Site structure changes often, so the scan runs over every paragraph
    and content block rather than a fixed selector.
    """

    name = "nnpc"
    source = "nnpcgroup.com"
    url = "https://www.nnpcgroup.com/"

    def extract(self, soup: BeautifulSoup) -> list[RawCandidate]:
        candidates: list[RawCandidate] = []
        for block in soup.select("p, .content, .news-content"):
            text = block.get_text(" ", strip=True)
            lowered = text.lower()
            for keyword in FUEL_KEYWORDS:
                if keyword not in lowered:
                    continue
                match = _FUEL_PRICE.search(text)
                if match is None:
                    continue
                candidates.append(
                    RawCandidate(
                        item_text=f"Fuel Price ({keyword.upper()})",
                        price_text=match.group(1),
                        currency_hint="NGN",
                    )
                )
        return candidates
