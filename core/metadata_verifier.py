# Song Metadata Verification
# Matches a campaign's song against the Spotify, YouTube and Deezer catalogs

import re
import logging
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List

import requests

from config.app_config import (
    SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, YOUTUBE_API_KEY, EXTERNAL_TIMEOUT_SECONDS
)

logger = logging.getLogger(__name__)

MIN_VERIFIED_CONFIDENCE = 85
MIN_REVIEW_CONFIDENCE = 70
SPOTIFY_WEIGHT = 1.5

SPOTIFY_TRACK_PATTERNS = [
    r"spotify:track:([a-zA-Z0-9]{22})",
    r"open\.spotify\.com/track/([a-zA-Z0-9]{22})",
    r"^([a-zA-Z0-9]{22})$",
]
YOUTUBE_VIDEO_PATTERNS = [
    r"(?:youtube\.com/watch\?v=|youtu\.be/|music\.youtube\.com/watch\?v=)([a-zA-Z0-9_-]{11})",
    r"^([a-zA-Z0-9_-]{11})$",
]
DEEZER_TRACK_PATTERNS = [
    r"deezer\.com/(?:[a-z]{2}/)?track/(\d+)",
    r"^(\d+)$",
]


@dataclass
class SongMetadata:
    song_title: str
    artist_name: str
    spotify_url: Optional[str] = None
    youtube_url: Optional[str] = None
    deezer_url: Optional[str] = None
    isrc: Optional[str] = None


@dataclass
class PlatformMatch:
    platform: str
    found: bool
    title_match: int = 0
    artist_match: int = 0
    isrc_match: bool = False
    track_data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def score(self) -> float:
        return (self.title_match + self.artist_match) / 2


@dataclass
class VerificationSummary:
    spotify: Optional[PlatformMatch] = None
    youtube: Optional[PlatformMatch] = None
    deezer: Optional[PlatformMatch] = None
    is_verified: bool = False
    confidence: int = 0
    platforms_verified: int = 0
    total_platforms: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def matches(self) -> List[PlatformMatch]:
        return [m for m in (self.spotify, self.youtube, self.deezer) if m is not None]

    def to_dict(self) -> dict:
        return asdict(self)


def extract_id(link: Optional[str], patterns: List[str]) -> Optional[str]:
    if not link:
        return None
    for pattern in patterns:
        match = re.search(pattern, link)
        if match:
            return match.group(1)
    return None


def levenshtein_distance(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(first: Optional[str], second: Optional[str]) -> int:
    """Case-insensitive similarity as a 0-100 integer."""
    if not first or not second:
        return 0
    s1, s2 = first.lower().strip(), second.lower().strip()
    if s1 == s2:
        return 100
    longer, shorter = (s1, s2) if len(s1) > len(s2) else (s2, s1)
    if not longer:
        return 100
    distance = levenshtein_distance(longer, shorter)
    return round((len(longer) - distance) / len(longer) * 100)


class MetadataVerifier:
    """Looks the song up on each linked platform and scores the match."""

    SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
    SPOTIFY_API = "https://api.spotify.com/v1"
    YOUTUBE_API = "https://www.googleapis.com/youtube/v3"
    DEEZER_API = "https://api.deezer.com"

    def __init__(self, timeout: float = EXTERNAL_TIMEOUT_SECONDS):
        self.timeout = timeout

    def verify(self, song: SongMetadata) -> VerificationSummary:
        summary = VerificationSummary()

        spotify_id = extract_id(song.spotify_url, SPOTIFY_TRACK_PATTERNS)
        youtube_id = extract_id(song.youtube_url, YOUTUBE_VIDEO_PATTERNS)
        deezer_id = extract_id(song.deezer_url, DEEZER_TRACK_PATTERNS)

        summary.total_platforms = sum(1 for link in (song.spotify_url, song.youtube_url, song.deezer_url) if link)

        if song.spotify_url:
            if spotify_id:
                summary.spotify = self._lookup(self.verify_spotify, "spotify", spotify_id, song)
            else:
                summary.warnings.append("Invalid Spotify link provided")
        if song.youtube_url:
            if youtube_id:
                summary.youtube = self._lookup(self.verify_youtube, "youtube", youtube_id, song)
            else:
                summary.warnings.append("Invalid YouTube link provided")
        if song.deezer_url:
            if deezer_id:
                summary.deezer = self._lookup(self.verify_deezer, "deezer", deezer_id, song)
            else:
                summary.warnings.append("Invalid Deezer link provided")

        summary.platforms_verified = sum(1 for m in summary.matches() if m.found)
        summary.confidence = overall_confidence(summary)

        spotify_passed = summary.spotify is not None and summary.spotify.found and summary.spotify.score >= 80
        if spotify_passed and summary.confidence >= MIN_VERIFIED_CONFIDENCE:
            summary.is_verified = True
        elif summary.confidence >= MIN_REVIEW_CONFIDENCE:
            summary.warnings.append("Metadata partially matches - manual review recommended")
        else:
            summary.errors.append("Metadata verification failed - insufficient match confidence")

        _add_validation_messages(summary)
        logger.info(
            f"Verified '{song.song_title}' by {song.artist_name}: "
            f"confidence={summary.confidence} verified={summary.is_verified}"
        )
        return summary

    def _lookup(self, fn, platform, track_id, song) -> PlatformMatch:
        try:
            return fn(track_id, song)
        except (requests.exceptions.RequestException, KeyError, ValueError) as e:
            logger.warning(f"{platform} lookup failed for {track_id}: {e}")
            return PlatformMatch(platform=platform, found=False, error=str(e))

    def _get(self, url, headers=None, params=None) -> requests.Response:
        return requests.get(url, headers=headers, params=params, timeout=self.timeout)

    def _spotify_token(self) -> str:
        response = requests.post(
            self.SPOTIFY_TOKEN_URL,
            data={"grant_type": "client_credentials"},
            auth=(SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()["access_token"]

    def verify_spotify(self, track_id: str, song: SongMetadata) -> PlatformMatch:
        token = self._spotify_token()
        response = self._get(f"{self.SPOTIFY_API}/tracks/{track_id}", headers={"Authorization": f"Bearer {token}"})
        if response.status_code == 404:
            return PlatformMatch(platform="spotify", found=False, error="Track not found on Spotify")
        response.raise_for_status()
        track = response.json()

        artists = [a.get("name", "") for a in track.get("artists", [])]
        isrc = (track.get("external_ids") or {}).get("isrc")
        return PlatformMatch(
            platform="spotify",
            found=True,
            title_match=similarity(track.get("name"), song.song_title),
            artist_match=max((similarity(name, song.artist_name) for name in artists), default=0),
            isrc_match=bool(song.isrc) and isrc == song.isrc,
            track_data={
                "id": track.get("id"),
                "title": track.get("name"),
                "artists": artists,
                "album": (track.get("album") or {}).get("name"),
                "isrc": isrc,
                "popularity": track.get("popularity", 0),
                "duration_ms": track.get("duration_ms"),
            },
        )

    def verify_youtube(self, video_id: str, song: SongMetadata) -> PlatformMatch:
        response = self._get(
            f"{self.YOUTUBE_API}/videos",
            params={"part": "snippet,statistics", "id": video_id, "key": YOUTUBE_API_KEY},
        )
        response.raise_for_status()
        items = response.json().get("items") or []
        if not items:
            return PlatformMatch(platform="youtube", found=False, error="Video not found on YouTube")

        video = items[0]
        snippet = video.get("snippet", {})
        statistics = video.get("statistics", {})
        artist_match = max(
            similarity(snippet.get("title"), song.artist_name),
            similarity(snippet.get("channelTitle"), song.artist_name),
        )
        return PlatformMatch(
            platform="youtube",
            found=True,
            title_match=similarity(snippet.get("title"), song.song_title),
            artist_match=artist_match,
            track_data={
                "id": video.get("id"),
                "title": snippet.get("title"),
                "channel_title": snippet.get("channelTitle"),
                "published_at": snippet.get("publishedAt"),
                "view_count": int(statistics.get("viewCount", 0)),
                "like_count": int(statistics.get("likeCount", 0)),
                "channel_subscribers": self._channel_subscribers(snippet.get("channelId")),
            },
        )

    def _channel_subscribers(self, channel_id: Optional[str]) -> int:
        if not channel_id:
            return 0
        response = self._get(
            f"{self.YOUTUBE_API}/channels",
            params={"part": "statistics", "id": channel_id, "key": YOUTUBE_API_KEY},
        )
        response.raise_for_status()
        items = response.json().get("items") or []
        if not items:
            return 0
        return int(items[0].get("statistics", {}).get("subscriberCount", 0))

    def verify_deezer(self, track_id: str, song: SongMetadata) -> PlatformMatch:
        response = self._get(f"{self.DEEZER_API}/track/{track_id}")
        response.raise_for_status()
        track = response.json()
        if track.get("error"):
            return PlatformMatch(platform="deezer", found=False, error="Track not found on Deezer")

        artist = (track.get("artist") or {}).get("name")
        return PlatformMatch(
            platform="deezer",
            found=True,
            title_match=similarity(track.get("title"), song.song_title),
            artist_match=similarity(artist, song.artist_name),
            isrc_match=bool(song.isrc) and track.get("isrc") == song.isrc,
            track_data={
                "id": track.get("id"),
                "title": track.get("title"),
                "artist": artist,
                "album": (track.get("album") or {}).get("title"),
                "isrc": track.get("isrc"),
                "rank": track.get("rank", 0),
                "release_date": track.get("release_date"),
            },
        )


def overall_confidence(summary: VerificationSummary) -> int:
    """Weighted mean of per-platform scores. Spotify counts 1.5x."""
    total = 0.0
    weight = 0.0
    for match in summary.matches():
        if not match.found:
            continue
        w = SPOTIFY_WEIGHT if match.platform == "spotify" else 1.0
        total += match.score * w
        weight += w
    return round(total / weight) if weight else 0


def _add_validation_messages(summary: VerificationSummary):
    spotify = summary.spotify
    if spotify is not None and spotify.found:
        if spotify.title_match < 80:
            summary.warnings.append("Spotify: Song title does not closely match")
        if spotify.artist_match < 80:
            summary.warnings.append("Spotify: Artist name does not closely match")
        if not spotify.isrc_match:
            summary.warnings.append("Spotify: ISRC code does not match")
    else:
        summary.errors.append("Spotify verification failed - track not found or inaccessible")

    youtube = summary.youtube
    if youtube is not None:
        if not youtube.found:
            summary.warnings.append("YouTube: Video not found or inaccessible")
        elif youtube.title_match < 70 or youtube.artist_match < 70:
            summary.warnings.append("YouTube: Video title or channel does not closely match")

    deezer = summary.deezer
    if deezer is not None:
        if not deezer.found:
            summary.warnings.append("Deezer: Track not found or inaccessible")
        elif deezer.title_match < 80 or deezer.artist_match < 80:
            summary.warnings.append("Deezer: Track metadata does not closely match")
