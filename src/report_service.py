"""
Report generation: price every submitted item and hand the result to a renderer.
"""

import asyncio
import dataclasses
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import Config
from exceptions import ReportError, ValidationError
from market_research import PriceResearch, ValueEstimator, get_market_research
from models import DEFAULT_CONFIDENCE, RenderedReport, ReportItem

logger = logging.getLogger(__name__)

REPORT_TYPES = ("full", "standard", "asset-listing")
CURRENCIES = ("USD", "CAD")
DEFAULT_COMPANY_NAME = "ClearValue Appraisals"


@dataclass
class ReportRequest:
    """Items and options submitted for one report."""
    items: List[ReportItem]
    report_type: str = "standard"
    currency: str = "USD"
    language: Optional[str] = None
    wear_tear_analysis: bool = False
    asset_owner: Optional[str] = None
    appraiser_name: Optional[str] = None
    company_name: Optional[str] = None
    industry: Optional[str] = None
    company_contacts: Optional[str] = None
    company_website: Optional[str] = None
    head_office_address: Optional[str] = None

    def __post_init__(self):
        if self.report_type not in REPORT_TYPES:
            raise ValidationError(f"Invalid report type: {self.report_type}")
        if self.currency not in CURRENCIES:
            raise ValidationError(f"Unsupported currency: {self.currency}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReportRequest':
        """Build a request from a client payload with camelCase keys."""
        items = []
        for entry in data.get("items") or []:
            if not entry.get("name"):
                raise ValidationError(f"Report item has no name: {entry!r}")
            items.append(ReportItem(
                name=entry["name"],
                condition=entry.get("condition") or "",
                details=entry.get("details") or "",
                id=entry.get("id"),
                image_url=entry.get("imageUrl"),
            ))

        return cls(
            items=items,
            report_type=data.get("reportType", "standard"),
            currency=data.get("currency", "USD"),
            language=data.get("language"),
            wear_tear_analysis=bool(data.get("wearTearAnalysis", False)),
            asset_owner=data.get("assetOwner"),
            appraiser_name=data.get("appraiserName"),
            company_name=data.get("companyName"),
            industry=data.get("industry"),
            company_contacts=data.get("companyContacts"),
            company_website=data.get("companyWebsite"),
            head_office_address=data.get("headOfficeAddress"),
        )


@dataclass
class ReportOptions:
    """Rendering options derived from a report request."""
    report_type: str
    currency: str
    language: str = "en"
    include_market_comparison: bool = True
    include_condition_details: bool = True
    include_price_history: bool = False
    include_wear_tear: bool = False
    asset_owner: str = ""
    appraiser_name: str = ""
    company_name: str = DEFAULT_COMPANY_NAME
    industry: str = ""
    company_contacts: str = ""
    company_website: str = ""
    head_office_address: str = ""

    @classmethod
    def from_request(cls, request: ReportRequest) -> 'ReportOptions':
        return cls(
            report_type=request.report_type,
            currency=request.currency,
            language=request.language or "en",
            include_price_history=request.report_type == "full",
            include_wear_tear=request.wear_tear_analysis,
            asset_owner=request.asset_owner or "",
            appraiser_name=request.appraiser_name or "",
            company_name=request.company_name or DEFAULT_COMPANY_NAME,
            industry=request.industry or "",
            company_contacts=request.company_contacts or "",
            company_website=request.company_website or "",
            head_office_address=request.head_office_address or "",
        )


class ReportRenderer(ABC):
    """Abstract interface for report renderers."""

    @abstractmethod
    def render(self, main: ReportItem, additional: List[ReportItem],
               options: ReportOptions) -> RenderedReport:
        """Write the report and return where it was written."""
        pass


class JsonReportRenderer(ReportRenderer):
    """Writes the priced items and options as a JSON document."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    @staticmethod
    def _slug(text: str) -> str:
        return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-") or "report"

    def render(self, main: ReportItem, additional: List[ReportItem],
               options: ReportOptions) -> RenderedReport:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_name = f"{options.report_type}_{self._slug(main.name)}_{timestamp}.json"
        file_path = self.output_dir / file_name

        document = {
            'options': dataclasses.asdict(options),
            'main_product': dataclasses.asdict(main),
            'additional_products': [dataclasses.asdict(item) for item in additional],
            'generated_at': datetime.now().isoformat(),
        }
        file_path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")

        logger.info(f"Report written to {file_path}")
        return RenderedReport(file_path=file_path, file_name=file_name)


class ReportService:
    """Prices report items and renders the report."""

    def __init__(self, config: Config, research: PriceResearch,
                 estimator: ValueEstimator, renderer: ReportRenderer):
        self.config = config
        self.research = research
        self.estimator = estimator
        self.renderer = renderer

    async def price_item(self, item: ReportItem, options: ReportOptions) -> ReportItem:
        """Attach market research to an item, falling back to an AI estimate."""
        research = await get_market_research(self.research, item.name, options.language, options.currency)

        value = research.average_price
        confidence = DEFAULT_CONFIDENCE
        repair_cost = None

        if not value or value <= 0:
            estimate = await self.estimator.estimate(
                item.name,
                item.condition,
                currency=options.currency,
                language=options.language,
                wear_tear=options.include_wear_tear,
                details=item.details,
            )
            value = estimate.value
            confidence = estimate.confidence
            repair_cost = estimate.repair_cost

        return dataclasses.replace(
            item,
            market_research=research,
            value=value,
            confidence=confidence,
            repair_cost=repair_cost,
        )

    async def generate(self, request: ReportRequest) -> RenderedReport:
        """
        Generate one report.

        Raises:
            ReportError: If the request has no items or rendering fails
        """
        if not request.items:
            raise ReportError("At least one item is required to generate a report")

        options = ReportOptions.from_request(request)
        priced = await asyncio.gather(*(self.price_item(item, options) for item in request.items))
        priced = sorted(priced, key=lambda item: item.value or 0.0, reverse=True)

        main, additional = priced[0], priced[1:]
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.renderer.render, main, additional, options)
        except Exception as e:
            logger.error(f"Error rendering report: {e}", exc_info=True)
            raise ReportError(f"Failed to render report: {e}") from e
