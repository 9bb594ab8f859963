"""
Music search routes for the request form.
Proxies Spotify catalog search without requiring a Spotify login.
"""

from flask import Blueprint, current_app, jsonify, request


search_bp = Blueprint("search", __name__)


@search_bp.route("/spotify/search", methods=["GET"])
@search_bp.route("/public/spotify/search", methods=["GET"])
def search_music():
    """Search tracks, albums and artists"""
    results = current_app.spotify_catalog.search(
        request.args.get("q", ""),
        search_type=request.args.get("type"),
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )
    return jsonify(results)


@search_bp.route("/spotify/album/<album_id>/tracks", methods=["GET"])
@search_bp.route("/public/spotify/album/<album_id>/tracks", methods=["GET"])
def album_tracks(album_id):
    return jsonify(current_app.spotify_catalog.album_tracks(album_id))
