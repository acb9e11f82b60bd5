"""Pydantic data models - the system's type contracts."""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

SourceName = str

_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")

# --- Enumerations ---


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


class FreshnessState(StrEnum):
    """How a read request was classified against the persisted data."""

    FRESH_HIT = "fresh_hit"
    STALE_PRESENT = "stale_present"
    EMPTY = "empty"


# --- Acquisition Models ---


class RawCandidate(BaseModel):
    """Loosely formatted text pulled out of a source page.

    Adapters do not validate anything here; the normalizer does.
    """

    model_config = ConfigDict(frozen=True)

    item_text: str
    price_text: str
    currency_hint: str | None = None
    location_hint: str | None = None


class PriceObservation(BaseModel):
    """One normalized price data point from one source at one acquisition time."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    item: str
    price: float
    currency: str
    source: SourceName
    location: str
    observed_at: datetime

    @field_validator("item", "source", "location")
    @classmethod
    def non_empty_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must be non-empty after trimming")
        return v

    @field_validator("price")
    @classmethod
    def price_positive_finite(cls, v: float) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError(f"price must be a positive finite number, got {v}")
        return v

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not _CURRENCY_CODE.match(v):
            raise ValueError(f"currency must be a 3-letter code, got {v!r}")
        return v

    @field_validator("observed_at")
    @classmethod
    def observed_at_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC; aware ones are converted."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)


class SourceStatus(BaseModel):
    """Outcome of one adapter within an aggregation pass."""

    model_config = ConfigDict(frozen=True)

    source: SourceName
    success: bool
    count: int = 0
    error: str | None = None


class AggregationResult(BaseModel):
    """Combined result of an aggregation pass."""

    observations: list[PriceObservation] = Field(default_factory=list)
    per_source_status: dict[SourceName, SourceStatus] = Field(default_factory=dict)
    persisted: bool = False
    persistence_error: str | None = None
    started_at: datetime
    finished_at: datetime | None = None

    @property
    def success(self) -> bool:
        """False when scraped data could not be written."""
        return self.persistence_error is None

    @property
    def total(self) -> int:
        return len(self.observations)

    @property
    def failed_sources(self) -> list[SourceName]:
        return [name for name, s in self.per_source_status.items() if not s.success]

    def summary(self) -> dict:
        """JSON-friendly digest for API responses and logs."""
        return {
            "success": self.success,
            "total_scraped": self.total,
            "persisted": self.persisted,
            "persistence_error": self.persistence_error,
            "sources": {
                name: status.model_dump(exclude={"source"})
                for name, status in self.per_source_status.items()
            },
            "errors": [
                {"source": name, "error": status.error}
                for name, status in self.per_source_status.items()
                if not status.success
            ],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


# --- Read Models ---


class PriceQuery(BaseModel):
    """Filters for a read request.

    `item` and `location` are case-insensitive substring matches, `source`
    is an exact match, and a missing filter matches everything.
    """

    model_config = ConfigDict(frozen=True)

    item: str | None = None
    location: str | None = None
    source: str | None = None
    include_all: bool = False
    limit: int = 100
    max_age_minutes: int | None = None

    @field_validator("item", "location", "source")
    @classmethod
    def blank_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("limit")
    @classmethod
    def limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("limit must be >= 1")
        return v

    @field_validator("max_age_minutes")
    @classmethod
    def max_age_positive(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("max_age_minutes must be >= 1")
        return v

    def echo(self) -> dict:
        """Filters as echoed back to API callers."""
        return {
            "item": self.item,
            "location": self.location,
            "source": self.source,
            "all": self.include_all,
            "limit": self.limit,
        }


class PriceLookup(BaseModel):
    """What the freshness controller hands back to a reader."""

    observations: list[PriceObservation]
    cached: bool
    state: FreshnessState
    last_updated: datetime | None = None

    @property
    def count(self) -> int:
        return len(self.observations)
