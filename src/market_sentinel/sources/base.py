"""Source adapter protocol, shared HTML fetching, and the adapter registry."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable, ClassVar, Protocol, runtime_checkable

import httpx
from bs4 import BeautifulSoup

from market_sentinel.core.config import SourcesConfig
from market_sentinel.core.exceptions import SourceFetchError
from market_sentinel.core.models import RawCandidate

logger = logging.getLogger(__name__)

# Price-looking fragments in free text: ₦1,200 / N1,200.50 / $45 / 1,200 naira
PRICE_PATTERN = re.compile(
    r"(₦\s?[\d,]+(?:\.\d+)?"
    r"|â‚¦[\d,]+(?:\.\d+)?"
    r"|\bN[\d,]+(?:\.\d+)?"
    r"|\$\s?[\d,]+(?:\.\d+)?"
    r"|\d+(?:,\d{3})*(?:\.\d+)?\s*(?:naira|NGN|dollars?|USD)\b)",
    re.IGNORECASE,
)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def currency_hint_for(price_text: str) -> str:
    """USD when the matched fragment is dollar-denominated, NGN otherwise."""
    lowered = price_text.lower()
    if "$" in price_text or "usd" in lowered or "dollar" in lowered:
        return "USD"
    return "NGN"


def headline_item(title: str) -> str:
    """Trim a headline to its subject: text before the first dash or colon."""
    return title.split("–")[0].split(":")[0].strip()


@runtime_checkable
class SourceAdapter(Protocol):
    """Capability shared by every price source: fetch raw candidates.

    `name` is the short registry key (used in status maps and targeted
    runs); `source` is the attribution label stamped on observations.
    """

    @property
    def name(self) -> str: ...

    @property
    def source(self) -> str: ...

    async def fetch(self) -> list[RawCandidate]: ...


class HtmlSource:
    """Base for adapters that scrape a single HTML page.

    Subclasses set `name`, `source`, `url` and implement `extract()`.
    Fetching applies a bounded timeout, a browser-like User-Agent, and a
    fixed-delay retry for transient failures (timeouts, connection errors,
    429/5xx). Other non-2xx responses fail immediately.
    """

    name: ClassVar[str]
    source: ClassVar[str]
    url: ClassVar[str]
    extra_headers: ClassVar[dict[str, str]] = {}

    def __init__(self, config: SourcesConfig | None = None) -> None:
        self._config = config or SourcesConfig()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    async def fetch(self) -> list[RawCandidate]:
        """Download the page and extract candidates.

        Raises:
            SourceFetchError: network error, timeout, non-2xx, or no matches.
        """
        html = await self._get_html()
        soup = BeautifulSoup(html, "lxml")
        candidates = self.extract(soup)
        if not candidates:
            raise SourceFetchError(
                f"{self.name}: no price candidates found",
                context={"source": self.name, "url": self.url},
            )
        logger.debug("%s: extracted %d raw candidates", self.name, len(candidates))
        return candidates

    def extract(self, soup: BeautifulSoup) -> list[RawCandidate]:
        raise NotImplementedError

    def _headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": self._config.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        headers.update(self.extra_headers)
        return headers

    async def _get_html(self) -> str:
        attempts = self._config.retries + 1
        async with httpx.AsyncClient(
            headers=self._headers(),
            timeout=httpx.Timeout(self._config.request_timeout),
            follow_redirects=True,
        ) as client:
            for attempt in range(attempts):
                last_attempt = attempt == attempts - 1
                try:
                    response = await client.get(self.url)
                except httpx.TimeoutException as e:
                    if not last_attempt:
                        await self._backoff("timeout", attempt, attempts)
                        continue
                    raise SourceFetchError(
                        f"timeout fetching {self.url}",
                        context={"source": self.name, "url": self.url},
                    ) from e
                except httpx.TransportError as e:
                    if not last_attempt:
                        await self._backoff("connection error", attempt, attempts)
                        continue
                    raise SourceFetchError(
                        f"connection failed for {self.url}: {e}",
                        context={"source": self.name, "url": self.url},
                    ) from e

                if response.is_success:
                    return response.text

                if response.status_code in _RETRYABLE_STATUS and not last_attempt:
                    await self._backoff(f"HTTP {response.status_code}", attempt, attempts)
                    continue

                raise SourceFetchError(
                    f"HTTP {response.status_code} from {self.url}",
                    context={
                        "source": self.name,
                        "url": self.url,
                        "status_code": response.status_code,
                    },
                )

        # Unreachable: the final attempt always returns or raises
        raise SourceFetchError(
            f"request failed after all retries: {self.url}",
            context={"source": self.name, "url": self.url},
        )

    async def _backoff(self, reason: str, attempt: int, attempts: int) -> None:
        logger.warning(
            "%s: %s, retrying in %.1fs (attempt %d/%d)",
            self.name, reason, self._config.retry_delay, attempt + 1, attempts,
        )
        await asyncio.sleep(self._config.retry_delay)


SourceFactory = Callable[[SourcesConfig], SourceAdapter]


class SourceRegistry:
    """Registry of available price sources, keyed by lowercase name."""

    def __init__(self) -> None:
        self._factories: dict[str, SourceFactory] = {}

    def register(self, name: str, factory: SourceFactory) -> None:
        key = name.lower()
        if key in self._factories:
            raise ValueError(
                f"Source '{name}' is already registered. Use replace() to override."
            )
        self._factories[key] = factory

    def replace(self, name: str, factory: SourceFactory) -> None:
        key = name.lower()
        if key not in self._factories:
            raise KeyError(f"Source '{name}' is not registered.")
        self._factories[key] = factory

    def get(self, name: str) -> SourceFactory:
        return self._factories[name.lower()]

    def list_names(self) -> list[str]:
        return list(self._factories.keys())

    def create_enabled(self, config: SourcesConfig) -> list[SourceAdapter]:
        """Instantiate every source enabled in config (all when unset)."""
        enabled = config.enabled
        if enabled is not None:
            unknown = sorted(set(enabled) - set(self._factories))
            if unknown:
                logger.warning("Ignoring unknown sources in config: %s", ", ".join(unknown))
        return [
            factory(config)
            for name, factory in self._factories.items()
            if enabled is None or name in enabled
        ]
