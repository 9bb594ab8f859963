"""
Auto-moderation for song requests.

A request is scored in three stages:
1. keyword heuristics over the track title and artist names,
2. lyrics risk (theme keywords, local profanity list, optional classifier),
3. an ordered decision table that maps the combined signal to a status.

External lookups are best effort: a failed or slow provider only removes its
signal from the decision, it never blocks the request.
"""

import logging
import re
from dataclasses import dataclass, field

from backend.api.content_moderation import ClassifierResult
from backend.services.errors import ExternalServiceDegraded
from backend.services.intake import clamp, derive_content_confidence, round_half_up, sanitize_text


logger = logging.getLogger(__name__)

BANNED_TERMS = ("explicit", "uncensored", "dirty", "parental advisory", "violence", "gun", "drug", "sex")
BASE_SCORES = {"clean": 92, "explicit": 8, "unknown": 62}
BANNED_TERM_PENALTY = 12

THEME_TERMS = {
    "suggestive": ("sex", "sexy", "kiss", "touch", "bed", "naked", "body", "freak", "hook up", "make love", "twerk"),
    "alcohol": ("alcohol", "drink", "drunk", "whiskey", "vodka", "tequila", "beer", "wine", "shots", "bar",
                "bottle", "liquor"),
    "drugs": ("drug", "drugs", "weed", "marijuana", "cocaine", "crack", "meth", "heroin", "xanax", "molly",
              "ecstasy", "lean", "pills"),
    "violence": ("gun", "guns", "shoot", "murder", "kill", "blood", "knife", "fight", "dead", "die"),
}
THEME_WEIGHTS = {"suggestive": 4, "alcohol": 3, "drugs": 7, "violence": 6}
THEME_SCORE_CAP = 45

PROFANITY_TERMS = ("fuck", "fucking", "shit", "bitch", "motherfucker", "asshole", "dick", "pussy", "nigga",
                   "nigger", "cunt")
PROFANITY_PENALTY = 45

CLASSIFIER_FLAGGED_POINTS = 18
CLASSIFIER_CATEGORY_POINTS = (
    ("sexual", 16),
    ("violence", 18),
    ("hate", 22),
    ("illicit", 14),
    ("harassment", 10),
)
CLASSIFIER_SCORE_CAP = 65

HIGH_RISK_THRESHOLD = 70
MEDIUM_RISK_THRESHOLD = 35
RISK_WEIGHT = 0.65
REJECT_BELOW = 35
APPROVE_AT = 70


@dataclass
class LyricsAnalysis:
    found_lyrics: bool = False
    provider: str = ""
    profanity_detected: bool = False
    classifier: ClassifierResult = field(default_factory=ClassifierResult)
    theme_hits: dict = field(default_factory=lambda: {theme: 0 for theme in THEME_TERMS})
    risk_score: int = 0
    risk_level: str = "unknown"

    def hits(self, theme):
        return self.theme_hits.get(theme, 0)


@dataclass
class ModerationDecision:
    status: str
    moderation_reason: str
    review_note: str
    score: int
    base_score: int = 0
    analysis: LyricsAnalysis = None


# First matching rule picks the rejection reason.
REJECTION_REASON_RULES = (
    ("hate_speech", lambda a: a.classifier.has_category("hate")),
    ("violence", lambda a: a.classifier.has_category("violence")),
    ("sexual_content", lambda a: a.classifier.has_category("sexual")),
    ("policy_violation", lambda a: a.classifier.has_category("illicit")),
    ("explicit_lyrics", lambda a: a.profanity_detected),
    ("policy_violation", lambda a: a.hits("drugs") > 0 or a.hits("alcohol") > 0),
    ("violence", lambda a: a.hits("violence") > 0),
    ("sexual_content", lambda a: a.hits("suggestive") > 0),
)

# (status, note label, predicate over confidence / analysis / combined score)
DECISION_RULES = (
    ("rejected", "Auto-marked explicit by moderation",
     lambda confidence, analysis, score: (
         confidence == "explicit"
         or analysis.profanity_detected
         or analysis.risk_level == "high"
         or score < REJECT_BELOW
     )),
    ("pending", "Auto-flagged for review",
     lambda confidence, analysis, score: analysis.risk_level == "medium"),
    ("approved", "Auto-approved to queue",
     lambda confidence, analysis, score: confidence == "clean" and score >= APPROVE_AT),
)
FALLBACK_DECISION = ("pending", "Auto-flagged for review")


def count_keyword_hits(text, keywords):
    """Count keyword occurrences: whole-word for single tokens, substring for phrases"""
    haystack = sanitize_text(text, 30000).lower()
    if not haystack:
        return 0

    count = 0
    for keyword in keywords or ():
        token = sanitize_text(keyword, 60).lower()
        if not token:
            continue
        if " " in token:
            count += haystack.count(token)
        else:
            count += len(re.findall(rf"(?<![a-z0-9]){re.escape(token)}(?![a-z0-9])", haystack))
    return count


def contains_profanity(text):
    return any(count_keyword_hits(text, [term]) > 0 for term in PROFANITY_TERMS)


def keyword_base_score(track_name, artists, content_confidence):
    confidence = derive_content_confidence(content_confidence)
    score = BASE_SCORES[confidence]
    haystack = f"{sanitize_text(track_name, 200)} {' '.join(artists or [])}".lower()
    for term in BANNED_TERMS:
        if term in haystack:
            score -= BANNED_TERM_PENALTY
    return clamp(score, 0, 100)


def classifier_score(result):
    points = CLASSIFIER_FLAGGED_POINTS if result.flagged else 0
    for category, weight in CLASSIFIER_CATEGORY_POINTS:
        if result.has_category(category):
            points += weight
    return clamp(points, 0, CLASSIFIER_SCORE_CAP)


def risk_level_for(risk_score):
    if risk_score >= HIGH_RISK_THRESHOLD:
        return "high"
    if risk_score >= MEDIUM_RISK_THRESHOLD:
        return "medium"
    return "low"


def analyze_lyrics_text(lyrics, provider, classifier=None):
    theme_hits = {theme: count_keyword_hits(lyrics, terms) for theme, terms in THEME_TERMS.items()}
    profanity = contains_profanity(lyrics)

    classifier_result = ClassifierResult(available=False)
    if classifier is not None:
        try:
            classifier_result = classifier.classify(lyrics)
        except ExternalServiceDegraded as e:
            logger.warning(f"Classifier unavailable, continuing without it: {e}")
            classifier_result = ClassifierResult(available=True, failed=True)

    theme_score = min(THEME_SCORE_CAP, sum(theme_hits[theme] * THEME_WEIGHTS[theme] for theme in THEME_TERMS))
    risk_score = clamp(
        (PROFANITY_PENALTY if profanity else 0) + theme_score + classifier_score(classifier_result),
        0,
        100,
    )

    return LyricsAnalysis(
        found_lyrics=True,
        provider=provider,
        profanity_detected=profanity,
        classifier=classifier_result,
        theme_hits=theme_hits,
        risk_score=risk_score,
        risk_level=risk_level_for(risk_score),
    )


def choose_rejection_reason(analysis, confidence):
    if analysis.found_lyrics:
        for reason, matches in REJECTION_REASON_RULES:
            if matches(analysis):
                return reason
    return "explicit_lyrics" if confidence == "explicit" else "policy_violation"


def build_review_note(label, base_score, combined_score, analysis):
    parts = [
        f"{label} ({combined_score})",
        f"Lyrics provider: {analysis.provider or 'none'}",
        f"risk={analysis.risk_level}/{analysis.risk_score}",
    ]

    classifier = analysis.classifier
    if not classifier.available:
        parts.append("openai=disabled")
    elif not analysis.found_lyrics:
        parts.append("openai=skipped")
    else:
        parts.append("openai=failed" if classifier.failed else "openai=ok")
    if classifier.categories:
        parts.append(f"openai_categories:{','.join(sorted(classifier.categories))}")
    if classifier.flagged:
        parts.append("openai_flagged")

    if analysis.profanity_detected:
        parts.append("profanity detected")
    for theme in THEME_TERMS:
        if analysis.hits(theme) > 0:
            parts.append(f"{theme}:{analysis.hits(theme)}")

    parts.append(f"score {base_score} -> {combined_score}")
    return " | ".join(parts)


class ModerationPipeline:
    """Decides pending/approved/rejected for a track from its metadata and lyrics"""

    def __init__(self, lyrics_client=None, classifier=None, lyrics_enabled=True):
        self.lyrics_client = lyrics_client
        self.classifier = classifier
        self.lyrics_enabled = lyrics_enabled

    def analyze_lyrics(self, track_name, artists):
        if not self.lyrics_enabled or self.lyrics_client is None:
            return LyricsAnalysis()

        classifier_state = ClassifierResult(available=bool(self.classifier and self.classifier.available))
        try:
            lyrics, provider = self.lyrics_client.find_lyrics(track_name, artists)
        except ExternalServiceDegraded as e:
            logger.warning(f"Lyrics retrieval degraded for '{track_name}': {e}")
            return LyricsAnalysis(classifier=classifier_state)

        if not lyrics:
            return LyricsAnalysis(classifier=classifier_state)
        return analyze_lyrics_text(lyrics, provider, self.classifier)

    def decide(self, track_name, artists, content_confidence):
        confidence = derive_content_confidence(content_confidence)
        base_score = keyword_base_score(track_name, artists, confidence)
        analysis = self.analyze_lyrics(track_name, artists)
        combined_score = clamp(base_score - round_half_up(analysis.risk_score * RISK_WEIGHT), 0, 100)

        status, label = FALLBACK_DECISION
        for rule_status, rule_label, matches in DECISION_RULES:
            if matches(confidence, analysis, combined_score):
                status, label = rule_status, rule_label
                break

        reason = choose_rejection_reason(analysis, confidence) if status == "rejected" else ""
        review_note = build_review_note(label, base_score, combined_score, analysis)

        logger.info(f"Moderation for '{track_name}': {status} {reason or ''} (score {base_score} -> {combined_score})")
        return ModerationDecision(
            status=status,
            moderation_reason=reason,
            review_note=review_note[:500],
            score=combined_score,
            base_score=base_score,
            analysis=analysis,
        )
