# Performance Aggregator
# Normalizes connected streaming-account signals into a monthly snapshot

from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, Mapping
import logging

from config.roi_tables import RoiTables, DEFAULT_ROI_TABLES
from database.funding_models import StreamingPlatform

logger = logging.getLogger(__name__)

# YouTube payloads cover roughly the last three months of uploads
YOUTUBE_WINDOW_MONTHS = 3
SPOTIFY_STREAMS_PER_POPULARITY_POINT = 100


@dataclass
class SpotifyPerformance:
    streams: float = 0
    revenue: float = 0
    popularity: float = 0
    followers: int = 0
    has_data: bool = False


@dataclass
class YouTubePerformance:
    views: float = 0
    revenue: float = 0
    subscribers: int = 0
    has_data: bool = False


@dataclass
class PerformanceSnapshot:
    """Monthly estimate across platforms.

    A platform with ``has_data=False`` is unknown, not zero-performing.
    """
    spotify: SpotifyPerformance = field(default_factory=SpotifyPerformance)
    youtube: YouTubePerformance = field(default_factory=YouTubePerformance)

    @property
    def monthly_revenue(self) -> float:
        return self.spotify.revenue + self.youtube.revenue

    @property
    def total_streams(self) -> float:
        return self.spotify.streams + self.youtube.views

    @property
    def has_data(self) -> bool:
        return self.spotify.has_data or self.youtube.has_data

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthly_revenue": self.monthly_revenue,
            "total_streams": self.total_streams,
            "platforms": {
                "spotify": asdict(self.spotify),
                "youtube": asdict(self.youtube),
            },
        }


class PerformanceAggregator:

    def __init__(self, tables: RoiTables = DEFAULT_ROI_TABLES):
        self.tables = tables

    def aggregate(self, accounts: Mapping, country: Optional[str] = None) -> PerformanceSnapshot:
        """Build a snapshot from ``{platform: account}``; ``account`` carries ``platform_data``."""
        snapshot = PerformanceSnapshot()

        spotify_account = accounts.get(StreamingPlatform.SPOTIFY)
        if spotify_account is not None and spotify_account.platform_data:
            snapshot.spotify = self.spotify_performance(
                spotify_account.platform_data, country or spotify_account.country
            )

        youtube_account = accounts.get(StreamingPlatform.YOUTUBE)
        if youtube_account is not None and youtube_account.platform_data:
            snapshot.youtube = self.youtube_performance(
                youtube_account.platform_data, country or youtube_account.country
            )

        return snapshot

    def for_artist(self, provider, artist_id: str, country: Optional[str] = None) -> PerformanceSnapshot:
        snapshot = self.aggregate(provider.accounts_for(artist_id), country)
        logger.info(
            f"Performance for artist {artist_id}: monthly_revenue={snapshot.monthly_revenue:.2f} "
            f"streams={snapshot.total_streams:.0f}"
        )
        return snapshot

    def spotify_performance(self, data: Dict[str, Any], country=None) -> SpotifyPerformance:
        tracks = ((data.get("topTracks") or {}).get("shortTerm")) or []
        popularities = [track.get("popularity") or 0 for track in tracks]
        followers = (((data.get("profile") or {}).get("followers")) or {}).get("total") or 0

        streams = sum(p * SPOTIFY_STREAMS_PER_POPULARITY_POINT for p in popularities)
        return SpotifyPerformance(
            streams=streams,
            revenue=streams * self.tables.spotify_rate(country),
            popularity=sum(popularities) / len(popularities) if popularities else 0,
            followers=int(followers),
            has_data=bool(tracks) or bool(followers),
        )

    def youtube_performance(self, data: Dict[str, Any], country=None) -> YouTubePerformance:
        videos = data.get("recentVideos") or []
        recent_views = sum(
            int((video.get("statistics") or {}).get("viewCount") or 0) for video in videos
        )
        subscribers = (data.get("channel") or {}).get("subscriberCount") or 0

        views = recent_views / YOUTUBE_WINDOW_MONTHS
        return YouTubePerformance(
            views=views,
            revenue=views * self.tables.youtube_rate(country),
            subscribers=int(subscribers),
            has_data=bool(videos) or bool(subscribers),
        )
