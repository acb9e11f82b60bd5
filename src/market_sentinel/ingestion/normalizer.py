"""Observation normalizer: raw adapter text -> validated PriceObservation."""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime

from market_sentinel.core.exceptions import InvalidObservation
from market_sentinel.core.models import PriceObservation, RawCandidate

DEFAULT_CURRENCY = "NGN"
DEFAULT_LOCATION = "Nigeria"

# Applied after separators are removed, so "N 1,200" is already "N1200".
# Codes and the "N" prefix Nigerian sites use for ₦ must touch a digit.
_CURRENCY_MARKERS = re.compile(
    r"₦|â‚¦|\$|€|£"
    r"|(?:NGN|USD|EUR|GBP|naira|dollars?)(?=\d|$)"
    r"|N(?=\d)",
    re.IGNORECASE,
)
_SEPARATORS = re.compile(r"[,\s]")
_LEADING_NUMBER = re.compile(r"^\d+(?:\.\d+)?")
_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")
_USD_MARKERS = re.compile(r"\$|\bUSD(?![a-z])|\bdollars?\b", re.IGNORECASE)


def parse_price(text: str) -> float:
    """Parse loosely formatted price text into a positive float.

    Strips currency markers and thousands separators, then reads the
    leading number: "₦1,200" -> 1200.0, "N1,200.50" -> 1200.5,
    "NGN 1,200" -> 1200.0, "1,200 naira" -> 1200.0, "₦650/litre" -> 650.0.

    Raises:
        ValueError: no leading number, or the number is not positive.
    """
    stripped = _SEPARATORS.sub("", text)
    stripped = _CURRENCY_MARKERS.sub("", stripped)
    match = _LEADING_NUMBER.match(stripped)
    if match is None:
        raise ValueError(f"no numeric price in {text!r}")
    value = float(match.group(0))
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"price must be positive, got {value}")
    return value


def _resolve_currency(candidate: RawCandidate, default: str) -> str:
    hint = (candidate.currency_hint or "").strip().upper()
    if _CURRENCY_CODE.match(hint):
        return hint
    if _USD_MARKERS.search(candidate.price_text):
        return "USD"
    return default


def normalize(
    candidate: RawCandidate,
    source_name: str,
    *,
    default_currency: str = DEFAULT_CURRENCY,
    default_location: str = DEFAULT_LOCATION,
    now: datetime | None = None,
) -> PriceObservation:
    """Validate and convert one raw candidate.

    `observed_at` is the acquisition time (now), never a source-reported date.

    Raises:
        InvalidObservation: empty item or source, or unparseable price.
    """
    source = (source_name or "").strip()
    if not source:
        raise InvalidObservation(
            "source name is empty",
            context={"source": source_name, "field": "source", "value": source_name},
        )

    item = (candidate.item_text or "").strip()
    if not item:
        raise InvalidObservation(
            "item text is empty",
            context={"source": source, "field": "item", "value": candidate.item_text},
        )

    try:
        price = parse_price(candidate.price_text or "")
    except ValueError as e:
        raise InvalidObservation(
            f"invalid price: {e}",
            context={"source": source, "field": "price", "value": candidate.price_text},
        ) from e

    location = (candidate.location_hint or "").strip() or default_location

    return PriceObservation(
        item=item,
        price=price,
        currency=_resolve_currency(candidate, default_currency),
        source=source,
        location=location,
        observed_at=now or datetime.now(tz=UTC),
    )
