# ROI Projection Engine
# Projects campaign revenue from streaming performance and catalog metadata,
# applies the revenue split and derives the investor-facing expected ROI.

from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Optional, Any
import logging

from config.roi_tables import RoiTables, DEFAULT_ROI_TABLES
from services.performance_aggregator import PerformanceSnapshot

logger = logging.getLogger(__name__)

ROI_LOWER_BOUND = -50.0
ROI_UPPER_BOUND = 500.0

BASE_CONFIDENCE = 50
MAX_CONFIDENCE = 85

METHODOLOGY = (
    "ROI calculated using: (1) Historical streaming performance data, "
    "(2) Current platform metrics from verification, "
    "(3) Genre-specific performance multipliers, "
    "(4) Industry-standard revenue per stream rates, "
    "(5) 70/25/5 revenue split model"
)
DISCLAIMER = (
    "ROI calculated based on historical performance data and industry averages. "
    "Actual results may vary."
)
INVESTOR_DISCLAIMER = "Projections based on historical data and industry averages. Not guaranteed."
RETURN_DISCLAIMER = (
    "You will receive your proportional share of the 25% investor revenue. "
    "Returns depend on actual project performance."
)


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    MEDIUM_HIGH = "Medium-High"
    HIGH = "High"


def round_half_up(value, places: int = 2) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass
class CampaignInputs:
    funding_goal: float
    genre: str
    duration: str


@dataclass
class BaselineMetrics:
    spotify_popularity: float = 0
    youtube_average_views: float = 0
    youtube_subscribers: int = 0
    deezer_rank: int = 0


@dataclass
class ROIProjection:
    total_gross_revenue: float
    artist_share: float
    investor_share: float
    platform_fee: float
    expected_roi_percentage: float
    confidence: int
    is_fallback: bool = False
    revenue_breakdown: Dict[str, float] = field(default_factory=dict)
    projected_streams: Dict[str, int] = field(default_factory=dict)
    baseline_metrics: Optional[BaselineMetrics] = None
    methodology: str = METHODOLOGY
    disclaimer: str = DISCLAIMER
    calculated_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InvestorROIPreview:
    investment_amount: float
    ownership_percentage: float
    projected_return: float
    projected_profit: float
    roi_percentage: float
    confidence: int
    risk_level: RiskLevel
    disclaimer: str = INVESTOR_DISCLAIMER


@dataclass
class InvestorReturn:
    investment_amount: float
    ownership_percentage: float
    projected_return: float
    projected_profit: float
    expected_roi_percentage: float
    disclaimer: str = RETURN_DISCLAIMER


def determine_risk_level(confidence: float, roi_percentage: float) -> RiskLevel:
    if confidence >= 75 and roi_percentage > 0:
        return RiskLevel.LOW
    if confidence >= 60 and roi_percentage > 0:
        return RiskLevel.MEDIUM
    if confidence >= 40:
        return RiskLevel.MEDIUM_HIGH
    return RiskLevel.HIGH


def estimate_from_popularity(popularity: float) -> int:
    """Monthly Spotify streams implied by a 0-100 popularity score."""
    if popularity >= 80:
        return 50000
    if popularity >= 60:
        return 25000
    if popularity >= 40:
        return 10000
    if popularity >= 20:
        return 5000
    return 1000


def estimate_from_subscribers(subscribers: float) -> float:
    """Monthly YouTube views implied by channel size (engagement tiers)."""
    if subscribers >= 100000:
        return subscribers * 0.5
    if subscribers >= 10000:
        return subscribers * 0.3
    if subscribers >= 1000:
        return subscribers * 0.2
    return max(subscribers * 0.1, 500)


def estimate_from_rank(rank: float) -> int:
    if rank >= 500000:
        return 20000
    if rank >= 100000:
        return 10000
    if rank >= 50000:
        return 5000
    if rank >= 10000:
        return 2000
    return 500


def expected_roi_percentage(investor_share: float, funding_goal: float) -> float:
    if funding_goal <= 0:
        return 0.0
    return round_half_up((investor_share / funding_goal - 1) * 100, 1)


class ROIProjectionEngine:
    """Stateless calculator. All lookup tables come from ``tables``."""

    def __init__(self, tables: RoiTables = DEFAULT_ROI_TABLES):
        self.tables = tables

    def calculate_automatic_roi(
        self,
        inputs: CampaignInputs,
        snapshot: Optional[PerformanceSnapshot],
        verification: Optional[Dict[str, Any]],
    ) -> ROIProjection:
        snapshot = snapshot or PerformanceSnapshot()
        baseline = self.extract_baseline_metrics(verification or {})

        projected_streams = self.project_streams(snapshot, baseline, inputs.genre, inputs.duration)
        revenue_breakdown = {
            platform: streams * self.tables.platform_rates[platform]
            for platform, streams in projected_streams.items()
        }
        total = round_half_up(sum(revenue_breakdown.values()))

        split = self.tables.revenue_split
        artist_share = round_half_up(total * split["artist"])
        investor_share = round_half_up(total * split["investors"])
        platform_fee = round_half_up(total * split["platform"])

        roi = expected_roi_percentage(investor_share, float(inputs.funding_goal))
        is_fallback = False
        if roi < ROI_LOWER_BOUND or roi > ROI_UPPER_BOUND:
            fallback = self.calculate_fallback_roi(inputs.genre, inputs.duration)
            logger.warning(f"Projected ROI {roi}% out of bounds, using fallback {fallback}%")
            roi = fallback
            is_fallback = True

        return ROIProjection(
            total_gross_revenue=total,
            artist_share=artist_share,
            investor_share=investor_share,
            platform_fee=platform_fee,
            expected_roi_percentage=roi,
            confidence=self.calculate_confidence(snapshot, baseline),
            is_fallback=is_fallback,
            revenue_breakdown={k: round_half_up(v) for k, v in revenue_breakdown.items()},
            projected_streams=projected_streams,
            baseline_metrics=baseline,
        )

    def extract_baseline_metrics(self, verification: Dict[str, Any]) -> BaselineMetrics:
        """Pull platform presence figures out of a stored verification summary."""
        metrics = BaselineMetrics()

        spotify = _track_data(verification, "spotify")
        metrics.spotify_popularity = spotify.get("popularity") or 0

        youtube = _track_data(verification, "youtube")
        metrics.youtube_average_views = youtube.get("view_count") or 0
        metrics.youtube_subscribers = youtube.get("channel_subscribers") or 0

        deezer = _track_data(verification, "deezer")
        metrics.deezer_rank = deezer.get("rank") or 0
        return metrics

    def project_streams(self, snapshot: PerformanceSnapshot, baseline: BaselineMetrics,
                        genre: str, duration: str) -> Dict[str, int]:
        base_monthly = {
            "spotify": max(snapshot.spotify.streams, estimate_from_popularity(baseline.spotify_popularity)),
            "youtube": max(snapshot.youtube.views, estimate_from_subscribers(baseline.youtube_subscribers)),
            "deezer": estimate_from_rank(baseline.deezer_rank),
        }
        factor = (
            self.tables.genre_multiplier(genre)
            * self.tables.duration_multiplier(duration)
            * self.tables.months_for(duration)
        )
        return {platform: int(round_half_up(monthly * factor, 0)) for platform, monthly in base_monthly.items()}

    def calculate_fallback_roi(self, genre: str, duration: str) -> float:
        base = self.tables.fallback_genre_roi.get((genre or "").lower(), self.tables.default_fallback_roi)
        multiplier = self.tables.fallback_duration_multipliers.get(duration, 1.0)
        return round_half_up(base * multiplier, 1)

    def calculate_confidence(self, snapshot: PerformanceSnapshot, baseline: BaselineMetrics) -> int:
        confidence = BASE_CONFIDENCE

        # Historical data only counts where the platform actually reported
        if snapshot.spotify.has_data and snapshot.spotify.streams > 0:
            confidence += 15
        if snapshot.youtube.has_data and snapshot.youtube.views > 0:
            confidence += 15
        if snapshot.has_data and snapshot.monthly_revenue > 0:
            confidence += 10

        if baseline.spotify_popularity > 0:
            confidence += 5
        if baseline.youtube_subscribers > 1000:
            confidence += 5

        return min(confidence, MAX_CONFIDENCE)

    def calculate_investor_automatic_roi(self, amount: float, funding_goal: float,
                                         investor_share: float, confidence: int) -> InvestorROIPreview:
        amount = float(amount)
        funding_goal = float(funding_goal)
        ownership = amount / funding_goal if funding_goal > 0 else 0
        projected_return = float(investor_share) * ownership
        projected_profit = projected_return - amount
        roi = projected_profit / amount * 100 if amount > 0 else 0

        return InvestorROIPreview(
            investment_amount=amount,
            ownership_percentage=round_half_up(ownership * 100),
            projected_return=round_half_up(projected_return),
            projected_profit=round_half_up(projected_profit),
            roi_percentage=round_half_up(roi),
            confidence=confidence,
            risk_level=determine_risk_level(confidence, roi),
        )

    def calculate_investor_return_from_roi(self, amount: float, expected_roi: float,
                                           funding_goal: float) -> InvestorReturn:
        amount = float(amount)
        ownership = amount / float(funding_goal) * 100 if funding_goal else 0
        profit = amount * (float(expected_roi) / 100)
        return InvestorReturn(
            investment_amount=amount,
            ownership_percentage=round_half_up(ownership),
            projected_return=round_half_up(amount + profit),
            projected_profit=round_half_up(profit),
            expected_roi_percentage=float(expected_roi),
        )


def _track_data(verification: Dict[str, Any], platform: str) -> Dict[str, Any]:
    match = verification.get(platform) or {}
    return match.get("track_data") or {}
