"""Punch business desk: headlines about fuel and forex that quote a price."""

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

HEADLINE_KEYWORDS = ("fuel", "petrol", "diesel", "forex", "dollar")


class PunchSource(HtmlSource):
    name = "punch"
    source = "punchng.com"
    url = "https://punchng.com/topics/business/"
    extra_headers: ClassVar[dict[str, str]] = {
        "DNT": "1",
        "Upgrade-Insecure-Requests": "1",
        "Cache-Control": "max-age=0",
    }

    def extract(self, soup: BeautifulSoup) -> list[RawCandidate]:
        candidates: list[RawCandidate] = []
        for heading in soup.select(".entry-title, .post-title"):
            title = heading.get_text(" ", strip=True)
            lowered = title.lower()
            if not any(keyword in lowered for keyword in HEADLINE_KEYWORDS):
                continue
            match = PRICE_PATTERN.search(title)
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
