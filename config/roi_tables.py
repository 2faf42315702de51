# Lookup tables for ROI projections and streaming revenue estimates.
# Tables are read-only; pass a modified RoiTables to the engine to override them.

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping


def _frozen(values: dict) -> Mapping:
    return MappingProxyType(dict(values))


# Per-stream payout used when projecting catalog revenue
PLATFORM_RATES = _frozen({
    "spotify": 0.003,
    "youtube": 0.002,
    "deezer": 0.0025,
})

REVENUE_SPLIT = _frozen({
    "artist": 0.70,
    "investors": 0.25,
    "platform": 0.05,
})

GENRE_MULTIPLIERS = _frozen({
    "pop": 1.3,
    "hip-hop": 1.4,
    "electronic": 1.2,
    "rock": 1.1,
    "r&b": 1.2,
    "country": 1.0,
    "indie": 1.0,
    "jazz": 0.8,
    "classical": 0.7,
    "folk": 0.9,
})

DURATION_MULTIPLIERS = _frozen({
    "6_months": 0.8,
    "1_year": 1.0,
    "2_years": 1.3,
    "5_years": 1.8,
    "lifetime": 2.5,
})

DURATION_MONTHS = _frozen({
    "6_months": 6,
    "1_year": 12,
    "2_years": 24,
    "5_years": 60,
    "lifetime": 120,
})

# Fallback path: annual ROI % by genre, scaled by campaign duration
FALLBACK_GENRE_ROI = _frozen({
    "pop": 12,
    "hip-hop": 15,
    "electronic": 10,
    "rock": 8,
    "r&b": 11,
    "country": 9,
    "indie": 7,
    "jazz": 5,
    "classical": 4,
    "folk": 6,
})

FALLBACK_DURATION_MULTIPLIERS = _frozen({
    "6_months": 0.5,
    "1_year": 1.0,
    "2_years": 1.8,
    "5_years": 3.5,
    "lifetime": 5.0,
})

# Per-country payout rates for connected streaming accounts
SPOTIFY_COUNTRY_RATES = _frozen({
    "US": 0.003,
    "UK": 0.0025,
    "Germany": 0.0028,
    "France": 0.0022,
    "Canada": 0.0026,
    "Australia": 0.0024,
    "India": 0.0008,
    "Brazil": 0.0012,
    "Japan": 0.0032,
    "South Korea": 0.0029,
})

YOUTUBE_COUNTRY_RATES = _frozen({
    "US": 0.002,
    "UK": 0.0018,
    "Germany": 0.0019,
    "France": 0.0016,
    "Canada": 0.0017,
    "Australia": 0.0016,
    "India": 0.0003,
    "Brazil": 0.0005,
    "Japan": 0.0021,
    "South Korea": 0.0018,
})


@dataclass(frozen=True)
class RoiTables:
    """Immutable bundle of every table the ROI engine and aggregator read."""
    platform_rates: Mapping = field(default_factory=lambda: PLATFORM_RATES)
    revenue_split: Mapping = field(default_factory=lambda: REVENUE_SPLIT)
    genre_multipliers: Mapping = field(default_factory=lambda: GENRE_MULTIPLIERS)
    duration_multipliers: Mapping = field(default_factory=lambda: DURATION_MULTIPLIERS)
    duration_months: Mapping = field(default_factory=lambda: DURATION_MONTHS)
    fallback_genre_roi: Mapping = field(default_factory=lambda: FALLBACK_GENRE_ROI)
    fallback_duration_multipliers: Mapping = field(default_factory=lambda: FALLBACK_DURATION_MULTIPLIERS)
    spotify_country_rates: Mapping = field(default_factory=lambda: SPOTIFY_COUNTRY_RATES)
    youtube_country_rates: Mapping = field(default_factory=lambda: YOUTUBE_COUNTRY_RATES)
    default_genre_multiplier: float = 1.0
    default_duration_multiplier: float = 1.0
    default_duration_months: int = 12
    default_fallback_roi: float = 8.0
    default_spotify_rate: float = 0.002
    default_youtube_rate: float = 0.001

    def genre_multiplier(self, genre: str) -> float:
        return self.genre_multipliers.get((genre or "").lower(), self.default_genre_multiplier)

    def duration_multiplier(self, duration: str) -> float:
        return self.duration_multipliers.get(duration, self.default_duration_multiplier)

    def months_for(self, duration: str) -> int:
        return self.duration_months.get(duration, self.default_duration_months)

    def spotify_rate(self, country=None) -> float:
        return self.spotify_country_rates.get(country, self.default_spotify_rate)

    def youtube_rate(self, country=None) -> float:
        return self.youtube_country_rates.get(country, self.default_youtube_rate)

    def with_overrides(self, **tables) -> "RoiTables":
        """Return a copy with the given tables replaced (frozen on the way in)."""
        frozen = {
            key: _frozen(value) if isinstance(value, dict) else value
            for key, value in tables.items()
        }
        return replace(self, **frozen)


DEFAULT_ROI_TABLES = RoiTables()
