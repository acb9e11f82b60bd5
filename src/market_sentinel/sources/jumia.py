"""Jumia groceries catalogue, restricted to staple foods."""

from __future__ import annotations

from bs4 import BeautifulSoup

from market_sentinel.core.models import RawCandidate
from market_sentinel.sources.base import HtmlSource

STAPLE_FOODS = ("rice", "beans", "garri", "maize", "palm oil", "tomato", "onion")


class JumiaSource(HtmlSource):
    name = "jumia"
    source = "jumia.com.ng"
    url = "https://jumia.com.ng/groceries/"

    def extract(self, soup: BeautifulSoup) -> list[RawCandidate]:
        candidates: list[RawCandidate] = []
        for product in soup.select(".item, .product, [data-item]"):
            name_el = product.select_one(".name, .title, h3")
            price_el = product.select_one(".price, .sale-price, .current-price")
            if name_el is None or price_el is None:
                continue
            name = name_el.get_text(" ", strip=True)
            price = price_el.get_text(strip=True)
            if not name or not price:
                continue
            if not any(food in name.lower() for food in STAPLE_FOODS):
                continue
            candidates.append(
                RawCandidate(item_text=name, price_text=price, currency_hint="NGN")
            )
        return candidates
