import unittest.mock

import pytest
import requests
import spotipy
from flask_caching.backends import SimpleCache

from backend.api.content_moderation import ContentClassifier, split_text_by_length
from backend.api.lyrics import LyricsClient, normalize_artist_for_lyrics, normalize_title_for_lyrics
from backend.api.spotify import SpotifyCatalog
from backend.services.errors import ExternalServiceDegraded, ValidationError


def fake_response(status_code=200, payload=None):
    response = unittest.mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


class TestLyricsClient:
    """Test lyrics retrieval with the HTTP layer mocked"""

    def test_title_and_artist_normalization(self):
        assert normalize_artist_for_lyrics("Calvin Harris feat. Rihanna") == "Calvin Harris"
        assert normalize_artist_for_lyrics("Simon & Garfunkel") == "Simon"
        assert normalize_title_for_lyrics("Mr. Brightside (Live) [2004] - Remastered 2019") == "Mr. Brightside"

    def test_first_provider_hit_wins(self):
        with unittest.mock.patch("backend.api.lyrics.requests.get") as mock_get:
            mock_get.return_value = fake_response(payload={"lyrics": "La la la"})
            lyrics, provider = LyricsClient().find_lyrics("Song", ["Artist"])

        assert (lyrics, provider) == ("La la la", "lyrics.ovh")
        assert mock_get.call_count == 1

    def test_falls_back_to_lrclib(self):
        responses = [fake_response(404), fake_response(payload={"plainLyrics": "", "syncedLyrics": "[00:01] hey"})]
        with unittest.mock.patch("backend.api.lyrics.requests.get", side_effect=responses):
            lyrics, provider = LyricsClient().find_lyrics("Song", ["Artist"])
        assert (lyrics, provider) == ("[00:01] hey", "lrclib")

    def test_outages_yield_no_lyrics(self):
        """Timeouts and server errors are logged and treated as a miss"""
        side_effect = [requests.Timeout(), fake_response(500)] * 2
        with unittest.mock.patch("backend.api.lyrics.requests.get", side_effect=side_effect) as mock_get:
            assert LyricsClient().find_lyrics("Song (Remix)", ["Artist"]) == ("", "")
        # raw title and cleaned title against both providers
        assert mock_get.call_count == 4

    def test_single_provider_error_raises_degraded(self):
        with unittest.mock.patch("backend.api.lyrics.requests.get", return_value=fake_response(502)):
            with pytest.raises(ExternalServiceDegraded):
                LyricsClient().fetch_from_lyrics_ovh("Artist", "Song")

    def test_results_are_cached(self):
        client = LyricsClient(cache=SimpleCache())
        with unittest.mock.patch("backend.api.lyrics.requests.get") as mock_get:
            mock_get.return_value = fake_response(payload={"lyrics": "La la la"})
            client.find_lyrics("Song", ["Artist"])
            client.find_lyrics("Song", ["Artist"])
        assert mock_get.call_count == 1


class TestContentClassifier:
    """Test the hosted moderation classifier"""

    def test_unavailable_without_key(self):
        with unittest.mock.patch("backend.api.content_moderation.requests.post") as mock_post:
            result = ContentClassifier("").classify("anything")
        assert not result.available
        mock_post.assert_not_called()

    def test_chunks_are_merged(self):
        responses = [
            fake_response(payload={"results": [{"flagged": False, "categories": {"violence": True, "hate": False}}]}),
            fake_response(payload={"results": [{"flagged": True, "categories": {"sexual/minors": True}}]}),
        ]
        with unittest.mock.patch("backend.api.content_moderation.requests.post", side_effect=responses) as mock_post:
            result = ContentClassifier("sk-test").classify("x" * 5000)

        assert mock_post.call_count == 2
        assert result.flagged
        assert result.categories == frozenset({"violence", "sexual/minors"})
        assert result.has_category("sexual")
        assert not result.failed

    def test_all_chunks_failing_marks_failure(self):
        with unittest.mock.patch("backend.api.content_moderation.requests.post", side_effect=requests.ConnectionError()):
            result = ContentClassifier("sk-test").classify("some lyrics")
        assert result.available
        assert result.failed
        assert not result.flagged

    def test_split_text(self):
        assert split_text_by_length("abcdefg", 3) == ["abc", "def", "g"]
        assert split_text_by_length("a" * 100, 10, max_chunks=2) == ["a" * 10, "a" * 10]


class TestSpotifyCatalog:
    """Test Spotify search formatting with spotipy mocked"""

    SEARCH_RESULT = {
        "tracks": {
            "total": 120,
            "items": [{
                "id": "t1",
                "name": "September",
                "artists": [{"name": "Earth, Wind & Fire"}],
                "album": {"name": "The Best Of", "images": [{"url": "https://img/1.jpg"}]},
                "explicit": False,
                "external_urls": {"spotify": "https://open.spotify.com/track/t1"},
                "preview_url": None,
            }],
        },
        "albums": {"total": 1, "items": [{
            "id": "a1", "name": "The Best Of", "artists": [{"name": "Earth, Wind & Fire"}],
            "images": [], "external_urls": {}, "release_date": "1978", "total_tracks": 10,
        }]},
        "artists": {"total": 0, "items": []},
    }

    def catalog_with(self, client, cache=None):
        catalog = SpotifyCatalog("id", "secret", cache=cache)
        catalog._client = client
        return catalog

    def test_search_formats_items(self):
        client = unittest.mock.Mock()
        client.search.return_value = self.SEARCH_RESULT
        result = self.catalog_with(client).search("september", limit="10", offset="0")

        client.search.assert_called_once_with(q="september", limit=10, offset=0, type="track,album,artist")
        track = result["tracks"][0]
        assert track["kind"] == "track"
        assert track["confidence"] == "clean"
        assert track["albumImage"] == "https://img/1.jpg"
        assert track["previewUrl"] == ""
        assert [item["kind"] for item in result["items"]] == ["track", "album"]
        assert result["page"]["trackHasMore"]
        assert not result["page"]["albumHasMore"]
        assert result["page"]["hasMore"]

    def test_limits_are_clamped(self):
        client = unittest.mock.Mock()
        client.search.return_value = {"tracks": {"items": [], "total": 0}}
        result = self.catalog_with(client).search("x", search_type="track", limit=500, offset=5000)
        assert result["page"]["limit"] == 50
        assert result["page"]["offset"] == 950
        client.search.assert_called_once_with(q="x", limit=50, offset=950, type="track")

    def test_blank_query(self):
        with pytest.raises(ValidationError, match="Search query is required"):
            self.catalog_with(unittest.mock.Mock()).search("   ")

    def test_missing_credentials(self):
        with pytest.raises(ExternalServiceDegraded):
            SpotifyCatalog().search("september")

    def test_spotify_errors_are_degraded(self):
        client = unittest.mock.Mock()
        client.search.side_effect = spotipy.SpotifyException(429, -1, "rate limited")
        with pytest.raises(ExternalServiceDegraded):
            self.catalog_with(client).search("september")

    def test_search_results_are_cached(self):
        client = unittest.mock.Mock()
        client.search.return_value = self.SEARCH_RESULT
        catalog = self.catalog_with(client, cache=SimpleCache())
        catalog.search("September")
        catalog.search("september")
        assert client.search.call_count == 1

    def test_album_tracks_follow_paging(self):
        client = unittest.mock.Mock()
        client.album.return_value = {
            "id": "a1", "name": "The Best Of", "artists": [{"name": "Earth, Wind & Fire"}],
            "images": [{"url": "https://img/a1.jpg"}], "external_urls": {}, "total_tracks": 2,
        }
        client.album_tracks.return_value = {
            "items": [{"id": "t1", "name": "September", "artists": [], "explicit": False, "track_number": 1}],
            "next": "https://api.spotify.com/v1/albums/a1/tracks?offset=50",
        }
        client.next.return_value = {
            "items": [{"id": None, "name": "Boogie Wonderland", "artists": [], "explicit": None, "track_number": 2}],
            "next": None,
        }

        result = self.catalog_with(client).album_tracks("a1")
        assert result["album"]["image"] == "https://img/a1.jpg"
        assert [item["id"] for item in result["items"]] == ["t1", "a1:2"]
        assert result["items"][1]["albumImage"] == "https://img/a1.jpg"
        assert result["items"][1]["confidence"] == "unknown"
        assert client.next.call_count == 1
