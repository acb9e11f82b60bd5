"""Nairametrics market-news listing: keyword-gated article scanning."""

from __future__ import annotations

from typing import ClassVar

from bs4 import BeautifulSoup

from market_sentinel.core.models import RawCandidate
from market_sentinel.sources.base import (
    PRICE_PATTERN,
    HtmlSource,
    currency_hint_for,
    headline_item,
)

COMMODITY_KEYWORDS = (
    "rice", "garri", "maize", "beans", "palm oil", "tomato", "onion",
    "yam", "cassava", "cocoa", "coffee", "groundnut", "sesame",
    "poultry", "fish", "beef", "milk", "eggs", "bread", "cement",
    "fuel", "petrol", "diesel", "kerosene",
)


class NairametricsSource(HtmlSource):
    """Articles whose headline names a commodity and whose headline or
    excerpt quotes a price. The headline subject becomes the item."""

    name = "nairametrics"
    source = "nairametrics.com"
    url = "https://nairametrics.com/category/market-news/"
    extra_headers: ClassVar[dict[str, str]] = {
        "DNT": "1",
        "Upgrade-Insecure-Requests": "1",
        "Cache-Control": "max-age=0",
    }

    def extract(self, soup: BeautifulSoup) -> list[RawCandidate]:
        candidates: list[RawCandidate] = []
        for article in soup.select("article"):
            heading = article.select_one("h2, h3")
            title = heading.get_text(" ", strip=True) if heading else ""
            if not title:
                continue
            excerpt_el = article.select_one(".entry-excerpt, .post-excerpt")
            excerpt = excerpt_el.get_text(" ", strip=True) if excerpt_el else ""

            lowered = title.lower()
            if not any(keyword in lowered for keyword in COMMODITY_KEYWORDS):
                continue

            match = PRICE_PATTERN.search(title) or PRICE_PATTERN.search(excerpt)
            if match is None:
                continue

            price_text = match.group(0)
            candidates.append(
                RawCandidate(
                    item_text=headline_item(title),
                    price_text=price_text,
                    currency_hint=currency_hint_for(price_text),
                )
            )
        return candidates
