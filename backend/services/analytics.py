"""
Vote-weighted queue analytics and the public projection of queue entries.
"""

from collections import Counter
from decimal import ROUND_HALF_UP, Decimal


PUBLIC_FIELDS = (
    "id", "trackId", "trackName", "artists", "albumName", "albumImage", "spotifyUrl",
    "dedicationMessage", "contentConfidence", "danceMoment", "energyLevel", "vibeTags",
    "voteCount", "priorityScore", "priorityTier", "setOrder", "status",
)


def project_public_entry(item):
    """Strip requester details and moderation notes from a serialized entry"""
    return {key: item.get(key) for key in PUBLIC_FIELDS}


def _ranked(counter, key_name, value_name="votes", limit=None):
    # Counter.most_common keeps first-seen order for ties
    return [{key_name: key, value_name: count} for key, count in counter.most_common(limit)]


def build_analytics(items):
    """Summarize serialized entries; every figure is weighted by vote count"""
    status_breakdown = {"pending": 0, "approved": 0, "rejected": 0}
    artist_votes = Counter()
    moment_votes = Counter()
    vibe_votes = Counter()
    reason_counts = Counter()
    track_votes = {}

    total_votes = 0
    approved_votes = 0
    weighted_priority = 0
    weighted_energy = 0
    pending_high_priority = 0

    for item in items:
        votes = item["voteCount"]
        status = item["status"]

        total_votes += votes
        status_breakdown[status] = status_breakdown.get(status, 0) + votes
        weighted_priority += item["priorityScore"] * votes
        weighted_energy += item["energyLevel"] * votes

        if status == "approved":
            approved_votes += votes
        if status == "pending" and item["priorityTier"] == "high":
            pending_high_priority += votes

        for artist in item["artists"]:
            artist_votes[artist] += votes
        moment_votes[item["danceMoment"]] += votes
        for tag in item["vibeTags"]:
            vibe_votes[tag] += votes

        track_key = item["trackId"] or item["trackName"]
        track = track_votes.setdefault(
            track_key,
            {"trackId": item["trackId"], "trackName": item["trackName"], "votes": 0, "status": status},
        )
        track["votes"] += votes
        track["status"] = status

        if status == "rejected" and item.get("moderationReason"):
            reason_counts[item["moderationReason"]] += votes

    def ratio(value):
        if not total_votes:
            return 0
        # halves round up
        return float(Decimal(value / total_votes).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))

    return {
        "totals": {
            "requests": len(items),
            "votes": total_votes,
            "approvedVotes": approved_votes,
            "approvalRate": ratio(approved_votes * 100),
            "averagePriorityScore": ratio(weighted_priority),
            "averageEnergyLevel": ratio(weighted_energy),
            "pendingHighPriority": pending_high_priority,
        },
        "statusBreakdown": status_breakdown,
        "topRequestedArtists": _ranked(artist_votes, "artist", limit=10),
        "topRequestedTracks": sorted(track_votes.values(), key=lambda track: -track["votes"])[:10],
        "danceMoments": _ranked(moment_votes, "danceMoment"),
        "vibeTags": _ranked(vibe_votes, "tag"),
        "moderationReasons": _ranked(reason_counts, "reason", value_name="count"),
    }


def build_feed_summary(analytics):
    return {
        "pendingVotes": analytics["statusBreakdown"].get("pending", 0),
        "approvedVotes": analytics["statusBreakdown"].get("approved", 0),
        "rejectedVotes": analytics["statusBreakdown"].get("rejected", 0),
        "averageEnergyLevel": analytics["totals"]["averageEnergyLevel"],
        "approvalRate": analytics["totals"]["approvalRate"],
    }
