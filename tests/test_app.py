import json
import unittest.mock

from cachelib.file import FileSystemCache
from flask import Flask

from backend.utils import config


def submit(client, body, ip="1.2.3.4", path="/api/public/request"):
    return client.post(path, json=body, headers={"CF-Connecting-IP": ip})


class TestHealthEndpoint:
    """Test the health check endpoint"""

    def test_health_returns_200(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert json.loads(response.data) == {"ok": True, "service": "dance-queue-api"}

    def test_cors_headers(self, client):
        response = client.get("/api/health", headers={"Origin": "https://dance.example.com"})
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "PATCH" in response.headers["Access-Control-Allow-Methods"]

    def test_preflight(self, client):
        response = client.open("/api/public/request", method="OPTIONS")
        assert response.status_code == 204
        assert response.headers["Access-Control-Allow-Headers"] == "Content-Type, Authorization"


class TestSubmission:
    """Test public song requests"""

    def test_new_request_returns_201(self, client, request_body):
        response = submit(client, request_body())
        assert response.status_code == 201
        data = json.loads(response.data)
        assert data["trackId"] == "track-1"
        assert data["status"] == "approved"
        assert data["retryAfterSec"] == 600
        assert "duplicateJoined" not in data

    def test_duplicate_from_another_guest_returns_200(self, client, request_body):
        submit(client, request_body(), ip="1.1.1.1")
        response = submit(client, request_body(requesterName="Jordan"), ip="2.2.2.2", path="/api/queue")
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["duplicateJoined"] is True
        assert data["voteCount"] == 2

    def test_rate_limited_request(self, client, request_body):
        submit(client, request_body())
        response = submit(client, request_body(trackId="track-2"))
        assert response.status_code == 429
        assert response.headers["Retry-After"] == str(json.loads(response.data)["retryAfterSec"])
        assert "one song every 10 minutes" in json.loads(response.data)["error"]

    def test_forwarded_for_identity(self, client, request_body):
        headers = {"X-Forwarded-For": "9.9.9.9, 10.0.0.1"}
        assert client.post("/api/queue", json=request_body(), headers=headers).status_code == 201
        response = client.post("/api/queue", json=request_body(trackId="track-2"), headers={"X-Forwarded-For": "9.9.9.9"})
        assert response.status_code == 429

    def test_invalid_requests(self, client, request_body):
        response = submit(client, request_body(requesterName=""))
        assert response.status_code == 400
        assert json.loads(response.data)["error"] == "Missing required fields"

        response = client.post("/api/public/request", data="not json", content_type="application/json")
        assert response.status_code == 400
        assert json.loads(response.data)["error"] == "Invalid JSON payload"


class TestPublicQueue:
    """Test the public views of the queue"""

    def test_public_queue_shows_approved_only(self, client, request_body):
        submit(client, request_body(trackId="a"), ip="1.1.1.1")
        submit(client, request_body(trackId="b", explicit=True), ip="2.2.2.2")
        data = json.loads(client.get("/api/public/queue").data)
        assert [item["trackId"] for item in data["items"]] == ["a"]
        assert "requesters" not in data["items"][0]

    def test_public_queue_rejects_other_statuses(self, client):
        response = client.get("/api/public/queue?status=pending")
        assert response.status_code == 400

    def test_get_queue_without_auth_is_public(self, client, request_body):
        submit(client, request_body(trackId="b", explicit=True))
        data = json.loads(client.get("/api/queue").data)
        assert data["items"] == []

    def test_get_queue_with_auth_lists_everything(self, client, request_body, admin_headers):
        submit(client, request_body(trackId="b", explicit=True))
        data = json.loads(client.get("/api/queue", headers=admin_headers).data)
        assert [item["status"] for item in data["items"]] == ["rejected"]

    def test_feed(self, client, request_body):
        submit(client, request_body())
        data = json.loads(client.get("/api/public/feed").data)
        assert len(data["upNext"]) == 1
        assert data["summary"]["approvalRate"] == 100.0
        assert data["trendingArtists"][0]["artist"] == "Earth, Wind & Fire"


class TestAdminAuth:
    """Test admin authentication"""

    def test_admin_routes_require_auth(self, client):
        response = client.get("/api/admin/queue")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == 'Basic realm="Dance Admin"'

    def test_wrong_credentials(self, client):
        response = client.get("/api/admin/queue", headers={"Authorization": "Basic bm9wZTpub3Bl"})
        assert response.status_code == 401

    def test_bearer_token_from_login(self, app, client):
        response = client.post("/api/admin/login", json={"username": "dj", "password": "secret"})
        assert response.status_code == 200
        token = json.loads(response.data)["token"]

        # a fresh client carries no session cookie
        response = app.test_client().get("/api/admin/session", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert json.loads(response.data)["username"] == "dj"

    def test_login_session(self, client):
        client.post("/api/admin/login", json={"username": "dj", "password": "secret"})
        assert client.get("/api/admin/queue").status_code == 200

        client.post("/api/admin/logout")
        assert client.get("/api/admin/queue").status_code == 401

    def test_bad_login(self, client):
        response = client.post("/api/admin/login", json={"username": "dj", "password": "wrong"})
        assert response.status_code == 401

    def test_missing_admin_credentials(self, app, client):
        app.config["ADMIN_PASSWORD"] = ""
        response = client.get("/api/admin/analytics")
        assert response.status_code == 500


class TestAdminRoutes:
    """Test moderation and queue control over HTTP"""

    def test_patch_entry(self, client, request_body, admin_headers):
        entry = json.loads(submit(client, request_body()).data)
        response = client.patch(
            f"/api/admin/queue/{entry['id']}",
            json={"status": "rejected", "moderationReason": "other", "reviewNote": "Not tonight"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["status"] == "rejected"
        assert data["setOrder"] is None

    def test_patch_alias_and_errors(self, client, request_body, admin_headers):
        entry = json.loads(submit(client, request_body()).data)
        response = client.patch(f"/api/queue/{entry['id']}", json={"status": "rejected"}, headers=admin_headers)
        assert response.status_code == 400

        response = client.patch("/api/queue/999", json={"status": "approved"}, headers=admin_headers)
        assert response.status_code == 404

        response = client.patch("/api/queue/abc", json={"status": "approved"}, headers=admin_headers)
        assert response.status_code == 400

    def test_reorder(self, client, request_body, admin_headers):
        ids = [
            json.loads(submit(client, request_body(trackId=track_id), ip=track_id).data)["id"]
            for track_id in ("a", "b", "c")
        ]
        response = client.post("/api/admin/reorder", json={"itemId": ids[1], "beforeId": ids[0]}, headers=admin_headers)
        assert response.status_code == 200

        items = json.loads(client.get("/api/admin/queue", headers=admin_headers).data)["items"]
        assert [(item["id"], item["setOrder"]) for item in items] == [(ids[1], 1), (ids[0], 2), (ids[2], 3)]

        response = client.post("/api/admin/reorder", json={"itemId": ids[0], "beforeId": ids[0]}, headers=admin_headers)
        assert response.status_code == 409

        response = client.post("/api/admin/reorder", json={"itemId": 0}, headers=admin_headers)
        assert response.status_code == 400

    def test_bulk_and_control(self, client, request_body, admin_headers):
        submit(client, request_body())
        response = client.post("/api/admin/bulk", json={"action": "reject_explicit"}, headers=admin_headers)
        assert json.loads(response.data) == {"updatedCount": 0, "updatedIds": []}

        response = client.post("/api/admin/control", json={"action": "play_next_approved"}, headers=admin_headers)
        assert json.loads(response.data)["updatedCount"] == 1

        response = client.post("/api/admin/control", json={"action": "explode"}, headers=admin_headers)
        assert response.status_code == 400

    def test_analytics(self, client, request_body, admin_headers):
        submit(client, request_body())
        for path in ("/api/admin/analytics", "/api/analytics"):
            data = json.loads(client.get(path, headers=admin_headers).data)
            assert data["totals"]["votes"] == 1


class TestSpotifySearch:
    """Test the Spotify search proxy"""

    def test_search(self, app, client):
        with unittest.mock.patch.object(app.spotify_catalog, "search", return_value={"items": []}) as mock_search:
            response = client.get("/api/public/spotify/search?q=september&type=track&limit=5")
        assert response.status_code == 200
        mock_search.assert_called_once_with("september", search_type="track", limit="5", offset=None)

    def test_search_requires_query(self, client):
        response = client.get("/api/spotify/search")
        assert response.status_code == 400

    def test_album_tracks(self, app, client):
        with unittest.mock.patch.object(app.spotify_catalog, "album_tracks", return_value={"album": {}, "items": []}):
            response = client.get("/api/spotify/album/a1/tracks")
        assert response.status_code == 200


class TestSessionStorage:
    """Test server-side session configuration"""

    def test_filesystem_sessions_use_cachelib(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config.tempfile, "gettempdir", lambda: str(tmp_path))
        app = Flask(__name__)
        app.config.update(REDIS_URL=None, PRODUCTION=False)

        assert config.configure_session_storage(app) == "filesystem"
        assert isinstance(app.config["SESSION_CACHELIB"], FileSystemCache)
        assert "SESSION_FILE_DIR" not in app.config
        assert "SESSION_USE_SIGNER" not in app.config

    def test_explicit_cachelib_is_kept(self, app):
        assert app.config["SESSION_TYPE"] == "filesystem"
        assert isinstance(app.config["SESSION_CACHELIB"], FileSystemCache)
        assert "SESSION_USE_SIGNER" not in app.config
