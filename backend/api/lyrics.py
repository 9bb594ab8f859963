"""
Lyrics lookup for content moderation.
Queries lyrics.ovh first and falls back to LRCLIB; both calls are short and never retried.
"""

import logging
import re
from urllib.parse import quote

import requests

from backend.services.errors import ExternalServiceDegraded
from backend.services.intake import sanitize_text


logger = logging.getLogger(__name__)

LYRICS_OVH_BASE_URL = "https://api.lyrics.ovh/v1"
LRCLIB_BASE_URL = "https://lrclib.net/api/get"
LYRICS_TIMEOUT_SECONDS = 3.5
LYRICS_CACHE_TIMEOUT = 6 * 60 * 60
MAX_LYRICS_LENGTH = 30000

REQUEST_HEADERS = {
    "User-Agent": "DanceQueue/1.0",
    "Accept": "application/json",
}

TITLE_SUFFIX_PATTERN = re.compile(r"-+\s*(remaster|radio edit|clean|explicit).*", re.IGNORECASE)


def normalize_artist_for_lyrics(artist):
    """Keep only the lead artist: drop featured and co-credited names"""
    lead = str(artist or "").split(",")[0].split("&")[0].split(" feat")[0]
    return sanitize_text(lead, 120)


def normalize_title_for_lyrics(title):
    """Strip (annotations), [tags] and trailing '- Remastered ...' style suffixes"""
    cleaned = sanitize_text(title, 200)
    cleaned = re.sub(r"\(.*?\)", "", cleaned)
    cleaned = re.sub(r"\[.*?\]", "", cleaned)
    cleaned = TITLE_SUFFIX_PATTERN.sub("", cleaned)
    return sanitize_text(cleaned.strip(), 200)


class LyricsClient:
    """Fetches lyrics text from public providers, tolerating misses and outages"""

    def __init__(self, timeout=LYRICS_TIMEOUT_SECONDS, cache=None):
        self.timeout = timeout
        self.cache = cache

    def _get_json(self, service, url, params=None):
        try:
            response = requests.get(url, params=params, headers=REQUEST_HEADERS, timeout=self.timeout)
        except requests.Timeout as e:
            raise ExternalServiceDegraded(service, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ExternalServiceDegraded(service, str(e)) from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ExternalServiceDegraded(service, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceDegraded(service, "invalid JSON body") from e

    def fetch_from_lyrics_ovh(self, artist, title):
        artist = normalize_artist_for_lyrics(artist)
        title = normalize_title_for_lyrics(title)
        if not artist or not title:
            return ""

        url = f"{LYRICS_OVH_BASE_URL}/{quote(artist, safe='')}/{quote(title, safe='')}"
        data = self._get_json("lyrics.ovh", url)
        if not isinstance(data, dict):
            return ""
        return sanitize_text(data.get("lyrics") or "", MAX_LYRICS_LENGTH)

    def fetch_from_lrclib(self, artist, title):
        artist = normalize_artist_for_lyrics(artist)
        title = normalize_title_for_lyrics(title)
        if not artist or not title:
            return ""

        data = self._get_json("lrclib", LRCLIB_BASE_URL, params={"artist_name": artist, "track_name": title})
        if not isinstance(data, dict):
            return ""
        return sanitize_text(data.get("plainLyrics") or data.get("syncedLyrics") or "", MAX_LYRICS_LENGTH)

    def find_lyrics(self, track_name, artists):
        """Return (lyrics, provider); ('', '') when no provider has the song"""
        artist_candidates = []
        for artist in artists or []:
            normalized = normalize_artist_for_lyrics(artist)
            if normalized and normalized not in artist_candidates:
                artist_candidates.append(normalized)
        if not artist_candidates:
            return "", ""

        primary_artist = artist_candidates[0]
        raw_title = sanitize_text(track_name, 200)
        title_candidates = [raw_title] if raw_title else []
        cleaned_title = normalize_title_for_lyrics(raw_title)
        if cleaned_title and cleaned_title != raw_title:
            title_candidates.append(cleaned_title)

        cache_key = f"lyrics:{primary_artist.lower()}:{(cleaned_title or raw_title).lower()}"
        cached = self._cache_get(cache_key)
        if cached:
            return cached["lyrics"], cached["provider"]

        providers = (
            ("lyrics.ovh", self.fetch_from_lyrics_ovh),
            ("lrclib", self.fetch_from_lrclib),
        )
        for title in title_candidates[:2]:
            for provider, fetch in providers:
                try:
                    lyrics = fetch(primary_artist, title)
                except ExternalServiceDegraded as e:
                    logger.warning(f"Lyrics lookup degraded for '{primary_artist} - {title}': {e}")
                    continue
                if lyrics:
                    self._cache_set(cache_key, {"lyrics": lyrics, "provider": provider})
                    return lyrics, provider

        return "", ""

    def _cache_get(self, key):
        if not self.cache:
            return None
        try:
            return self.cache.get(key)
        except Exception as e:
            logger.warning(f"Lyrics cache read failed for {key}: {e}")
            return None

    def _cache_set(self, key, value):
        if not self.cache:
            return
        try:
            self.cache.set(key, value, timeout=LYRICS_CACHE_TIMEOUT)
        except Exception as e:
            logger.warning(f"Lyrics cache write failed for {key}: {e}")
