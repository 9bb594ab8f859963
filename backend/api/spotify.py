"""
Spotify catalog lookups for the request form.
Uses the client credentials flow, so guests never sign in to Spotify.
"""

import logging

import spotipy
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOauthError

from backend.services.errors import ExternalServiceDegraded, ValidationError
from backend.services.intake import clamp, derive_content_confidence, parse_integer, sanitize_text


logger = logging.getLogger(__name__)

SEARCH_TYPES = ("track", "album", "artist", "all")
SEARCH_DEFAULT_LIMIT = 24
SEARCH_MAX_LIMIT = 50
SEARCH_MAX_OFFSET = 950
SEARCH_CACHE_TIMEOUT = 300
ALBUM_CACHE_TIMEOUT = 60 * 60
ALBUM_PAGE_SIZE = 50
SPOTIFY_TIMEOUT_SECONDS = 6


def normalize_search_type(value):
    search_type = sanitize_text(value, 16).lower()
    return search_type if search_type in SEARCH_TYPES else "all"


def _names(artists):
    return [artist.get("name", "") for artist in artists or [] if artist.get("name")]


def _first_image(images):
    return images[0].get("url", "") if images else ""


def _explicit_value(value):
    return value if isinstance(value, bool) else None


def format_track(track, album_name="", album_image=""):
    album = track.get("album") or {}
    explicit = _explicit_value(track.get("explicit"))
    return {
        "kind": "track",
        "id": track.get("id") or "",
        "name": track.get("name") or "",
        "artists": _names(track.get("artists")),
        "albumName": album.get("name") or album_name,
        "albumImage": _first_image(album.get("images")) or album_image,
        "explicit": explicit,
        "confidence": derive_content_confidence(explicit),
        "spotifyUrl": (track.get("external_urls") or {}).get("spotify", ""),
        "previewUrl": track.get("preview_url") or "",
    }


def format_album(album):
    return {
        "kind": "album",
        "id": album.get("id") or "",
        "name": album.get("name") or "",
        "artists": _names(album.get("artists")),
        "albumName": album.get("name") or "",
        "albumImage": _first_image(album.get("images")),
        "explicit": None,
        "confidence": "unknown",
        "spotifyUrl": (album.get("external_urls") or {}).get("spotify", ""),
        "previewUrl": "",
        "releaseDate": album.get("release_date") or "",
        "totalTracks": int(album.get("total_tracks") or 0),
    }


def format_artist(artist):
    return {
        "kind": "artist",
        "id": artist.get("id") or "",
        "name": artist.get("name") or "",
        "artists": [artist.get("name") or ""],
        "albumName": "",
        "albumImage": _first_image(artist.get("images")),
        "explicit": None,
        "confidence": "unknown",
        "spotifyUrl": (artist.get("external_urls") or {}).get("spotify", ""),
        "previewUrl": "",
        "followers": int((artist.get("followers") or {}).get("total") or 0),
    }


class SpotifyCatalog:
    """Search and album lookups against the Spotify Web API"""

    def __init__(self, client_id=None, client_secret=None, cache=None, timeout=SPOTIFY_TIMEOUT_SECONDS):
        self.client_id = client_id
        self.client_secret = client_secret
        self.cache = cache
        self.timeout = timeout
        self._client = None

    @property
    def configured(self):
        return bool(self.client_id and self.client_secret)

    def client(self):
        if not self.configured:
            raise ExternalServiceDegraded("spotify", "Spotify credentials not configured")
        if self._client is None:
            auth_manager = SpotifyClientCredentials(client_id=self.client_id, client_secret=self.client_secret)
            self._client = spotipy.Spotify(auth_manager=auth_manager, requests_timeout=self.timeout, retries=0)
        return self._client

    def _call(self, description, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except spotipy.SpotifyException as e:
            logger.warning(f"Spotify {description} failed: {e.http_status} {e.msg}")
            raise ExternalServiceDegraded("spotify", f"{description} failed") from e
        except SpotifyOauthError as e:
            logger.warning(f"Spotify token request failed: {e}")
            raise ExternalServiceDegraded("spotify", "Unable to retrieve Spotify token") from e

    def _cached(self, key):
        if self.cache is None:
            return None
        try:
            return self.cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    def _store(self, key, value, timeout):
        if self.cache is None:
            return
        try:
            self.cache.set(key, value, timeout=timeout)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def search(self, query, search_type="all", limit=None, offset=None):
        query = sanitize_text(query, 200)
        if not query:
            raise ValidationError("Search query is required")

        search_type = normalize_search_type(search_type)
        limit = clamp(parse_integer(limit) or SEARCH_DEFAULT_LIMIT, 1, SEARCH_MAX_LIMIT)
        offset = clamp(parse_integer(offset) or 0, 0, SEARCH_MAX_OFFSET)

        cache_key = f"spotify:search:{search_type}:{limit}:{offset}:{query.lower()}"
        cached = self._cached(cache_key)
        if cached:
            return cached

        spotify_type = "track,album,artist" if search_type == "all" else search_type
        data = self._call("search", self.client().search, q=query, limit=limit, offset=offset, type=spotify_type)

        tracks = [format_track(track) for track in (data.get("tracks") or {}).get("items") or [] if track]
        albums = [format_album(album) for album in (data.get("albums") or {}).get("items") or [] if album]
        artists = [format_artist(artist) for artist in (data.get("artists") or {}).get("items") or [] if artist]

        totals = {kind: int((data.get(kind) or {}).get("total") or 0) for kind in ("tracks", "albums", "artists")}
        has_more = {
            kind: search_type in (kind[:-1], "all") and offset + limit < totals[kind]
            for kind in totals
        }

        items = {"track": tracks, "album": albums, "artist": artists}.get(search_type, tracks + albums + artists)
        result = {
            "items": items,
            "tracks": tracks,
            "albums": albums,
            "artists": artists,
            "page": {
                "type": search_type,
                "limit": limit,
                "offset": offset,
                "trackTotal": totals["tracks"],
                "albumTotal": totals["albums"],
                "artistTotal": totals["artists"],
                "trackHasMore": has_more["tracks"],
                "albumHasMore": has_more["albums"],
                "artistHasMore": has_more["artists"],
                "hasMore": any(has_more.values()),
            },
        }
        self._store(cache_key, result, SEARCH_CACHE_TIMEOUT)
        return result

    def album_tracks(self, album_id):
        """Album details plus every track on it, following Spotify's paging"""
        album_id = sanitize_text(album_id, 100)
        if not album_id:
            raise ValidationError("Album id is required")

        cache_key = f"spotify:album:{album_id}"
        cached = self._cached(cache_key)
        if cached:
            return cached

        client = self.client()
        album = self._call("album lookup", client.album, album_id)
        album_info = {
            "id": album.get("id") or album_id,
            "name": album.get("name") or "",
            "artists": _names(album.get("artists")),
            "image": _first_image(album.get("images")),
            "spotifyUrl": (album.get("external_urls") or {}).get("spotify", ""),
            "releaseDate": album.get("release_date") or "",
            "totalTracks": int(album.get("total_tracks") or 0),
        }

        tracks = []
        page = self._call("album tracks", client.album_tracks, album_id, limit=ALBUM_PAGE_SIZE, offset=0)
        while page:
            for track in page.get("items") or []:
                item = format_track(track, album_info["name"], album_info["image"])
                item["id"] = item["id"] or f"{album_id}:{track.get('track_number')}"
                item["trackNumber"] = int(track.get("track_number") or 0)
                tracks.append(item)
            page = self._call("album tracks", client.next, page) if page.get("next") else None

        result = {"album": album_info, "items": tracks}
        self._store(cache_key, result, ALBUM_CACHE_TIMEOUT)
        return result
