"""
Market price research for appraised items.

Two PriceResearch collaborators are available: a web-search prompt against
an OpenAI model and the SerpAPI Google Shopping engine. Price research is
best effort; get_market_research turns every failure into an empty result
and the report service then falls back to the AI value estimate.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional

import httpx

from config import Config
from exceptions import MarketResearchError
from models import PriceRange, PriceStats, ValueEstimate
from prompt_templates import (
    MARKET_SEARCH_SYSTEM_PROMPT, MARKET_SEARCH_USER_PROMPT, VALUE_ESTIMATE_SYSTEM_PROMPT,
    build_value_estimate_prompt, language_name,
)

logger = logging.getLogger(__name__)

COUNTRY_BY_LANGUAGE = {
    'en': 'us',
    'fr': 'fr',
    'es': 'es',
    'de': 'de',
    'it': 'it',
    'pt': 'pt',
    'nl': 'nl',
    'ru': 'ru',
    'ja': 'jp',
    'zh': 'cn',
    'ar': 'ae',
    'hi': 'in',
    'ko': 'kr',
}

_NON_PRICE_CHARS = re.compile(r"[^0-9.]")


def country_code_from_language(language: str) -> str:
    """Search region for a language code such as 'fr' or 'en-GB'."""
    return COUNTRY_BY_LANGUAGE.get(language.split("-")[0].lower(), "us")


def determine_market_trend(prices: List[float]) -> str:
    """Compare the mean of the upper half of the sorted prices with the lower half.

    A difference of more than 10% either way counts as a trend.
    """
    if len(prices) < 2:
        return "stable"

    ordered = sorted(prices)
    middle = len(ordered) // 2
    lower = ordered[:middle]
    upper = ordered[middle:]
    lower_avg = sum(lower) / len(lower)
    upper_avg = sum(upper) / len(upper)

    if upper_avg > lower_avg * 1.1:
        return "increasing"
    if upper_avg < lower_avg * 0.9:
        return "decreasing"
    return "stable"


def parse_price(value: Any) -> Optional[float]:
    """Parse a price like "$1,299.00" or 1299 into a float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NON_PRICE_CHARS.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return None


def price_stats_from(prices: Iterable[float], sources: List[str],
                     trend: Optional[str] = None) -> PriceStats:
    """Summarize positive prices; raises MarketResearchError when there are none."""
    valid = [p for p in prices if p is not None and p > 0]
    if not valid:
        raise MarketResearchError("No market data found")

    return PriceStats(
        average_price=sum(valid) / len(valid),
        price_range=PriceRange(min=min(valid), max=max(valid)),
        market_trend=trend or determine_market_trend(valid),
        sources=sources,
    )


class PriceResearch(ABC):
    """Abstract interface for market price lookups."""

    @abstractmethod
    async def lookup(self, description: str, language: str = "en",
                     currency: str = "USD") -> PriceStats:
        """Return price statistics for an item description."""
        pass


class WebSearchPriceResearch(PriceResearch):
    """Asks an OpenAI model for current prices from reputable sources."""

    def __init__(self, config: Config, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self.config.vision.api_key:
                raise MarketResearchError("OPENAI_API_KEY is not configured")
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.config.vision.api_key,
                timeout=self.config.market.request_timeout,
            )
        return self._client

    async def lookup(self, description: str, language: str = "en",
                     currency: str = "USD") -> PriceStats:
        client = self._get_client()
        response = await client.chat.completions.create(
            model=self.config.market.model,
            messages=[
                {
                    "role": "system",
                    "content": MARKET_SEARCH_SYSTEM_PROMPT.format(
                        language_name=language_name(language), currency=currency),
                },
                {
                    "role": "user",
                    "content": MARKET_SEARCH_USER_PROMPT.format(description=description, currency=currency),
                },
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
        )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise MarketResearchError("Empty response from price search")

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise MarketResearchError(f"Price search returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MarketResearchError("Price search response is not a JSON object")

        prices = [parse_price(p) for p in data.get("prices") or []]
        sources = [str(s) for s in data.get("sources") or []]
        return price_stats_from(prices, sources, data.get("marketTrend"))


class ShoppingPriceResearch(PriceResearch):
    """Looks up shopping listings through SerpAPI's Google Shopping engine."""

    def __init__(self, config: Config, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    def build_params(self, description: str, language: str) -> dict:
        return {
            "api_key": self.config.market.serpapi_key,
            "engine": "google_shopping",
            "q": f"{description} price",
            "num": self.config.market.max_results,
            "hl": language,
            "gl": country_code_from_language(language),
        }

    async def _fetch(self, client: httpx.AsyncClient, params: dict) -> dict:
        response = await client.get(self.config.market.serpapi_url, params=params)
        response.raise_for_status()
        return response.json()

    async def lookup(self, description: str, language: str = "en",
                     currency: str = "USD") -> PriceStats:
        # Currency follows the search region
        params = self.build_params(description, language)
        if self._client is not None:
            data = await self._fetch(self._client, params)
        else:
            async with httpx.AsyncClient(timeout=self.config.market.request_timeout) as client:
                data = await self._fetch(client, params)

        results = data.get("shopping_results") or []
        prices = [parse_price(result.get("price")) for result in results]
        sources = [result["source"] for result in results if result.get("source")]
        return price_stats_from(prices, sources)


def create_price_research(config: Config) -> PriceResearch:
    if config.market.provider == "shopping":
        return ShoppingPriceResearch(config)
    return WebSearchPriceResearch(config)


async def get_market_research(research: PriceResearch, description: Optional[str],
                              language: str = "en", currency: str = "USD") -> PriceStats:
    """Best-effort price lookup; any failure yields PriceStats.empty()."""
    if not description or not description.strip():
        logger.warning("Market research skipped: item description is required")
        return PriceStats.empty()

    try:
        return await research.lookup(description, language, currency)
    except Exception as e:
        logger.error(f"Error getting market research for {description!r}: {e}")
        return PriceStats.empty()


def _number(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class ValueEstimator:
    """AI value estimate used when market research finds no prices."""

    def __init__(self, config: Config, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self.config.vision.api_key:
                raise MarketResearchError("OPENAI_API_KEY is not configured")
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.config.vision.api_key,
                timeout=self.config.market.request_timeout,
            )
        return self._client

    async def estimate(self, name: str, condition: str, currency: str = "USD",
                       language: str = "en", wear_tear: bool = False,
                       details: str = "") -> ValueEstimate:
        """
        Estimate the market value of an item in the given condition.

        Never raises; failures yield value 0 with confidence 0.5.
        """
        failed = ValueEstimate(value=0.0, confidence=0.5, repair_cost=0.0 if wear_tear else None)
        wear_tear_note = " Analyze wear and tear to estimate repair costs." if wear_tear else ""

        try:
            client = self._get_client()
            response = await client.chat.completions.create(
                model=self.config.vision.model,
                messages=[
                    {
                        "role": "system",
                        "content": VALUE_ESTIMATE_SYSTEM_PROMPT.format(
                            currency=currency,
                            language_name=language_name(language),
                            wear_tear_note=wear_tear_note,
                        ),
                    },
                    {
                        "role": "user",
                        "content": build_value_estimate_prompt(name, condition, currency, wear_tear, details),
                    },
                ],
                response_format={"type": "json_object"},
                temperature=0.2,
            )
            content = response.choices[0].message.content if response.choices else None
            if not content:
                raise MarketResearchError("Empty response from value estimate")
            data = json.loads(content)
        except Exception as e:
            logger.error(f"Error estimating value for {name!r}: {e}")
            return failed

        if not isinstance(data, dict):
            logger.error(f"Value estimate for {name!r} is not a JSON object")
            return failed

        repair_cost = None
        if wear_tear and data.get("repairCost") is not None:
            repair_cost = _number(data.get("repairCost"), 0.0)

        return ValueEstimate(
            value=_number(data.get("value"), 0.0),
            confidence=_number(data.get("confidence"), 0.7),
            repair_cost=repair_cost,
        )
