"""Centralized constants for the registry.

Scoring weights and thresholds are part of the detection contract and are
deliberately not exposed through configuration.
"""

from enum import Enum


GITHUB_API_BASE = "https://api.github.com"
GITHUB_WEB_BASE = "https://github.com"
USER_AGENT = "Vibe-Coded-Registry"

SCHEMA_VERSION = 1


class DetectionLevel(str, Enum):
    """Confidence level attached to a detection summary."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_score(cls, score: int) -> "DetectionLevel":
        if score >= HIGH_LEVEL_SCORE:
            return cls.HIGH
        if score >= MEDIUM_LEVEL_SCORE:
            return cls.MEDIUM
        return cls.LOW

    def __str__(self) -> str:
        return self.value


class DetectedVia(str, Enum):
    """How an AI tool was detected."""

    FILE = "file"
    COMMITS = "commits"


class FindingType(str, Enum):
    """Kind of scanner finding."""

    VULN = "vuln"
    SECRET = "secret"


class QueryKind(str, Enum):
    """Search endpoint a discovery query is issued against."""

    CODE = "code"
    REPO = "repo"
    COMMIT = "commit"


# Detection scorer
FILE_EVIDENCE_POINTS = 4
COMMIT_EVIDENCE_POINTS = 2
BOT_CONTRIBUTOR_POINTS = 3
DASH_PUNCTUATION_POINTS = 1
AI_MENTION_POINTS = 2
LARGE_COMMIT_POINTS = 1

MIN_AI_MENTION_COMMITS = 2
HIGH_LEVEL_SCORE = 9
MEDIUM_LEVEL_SCORE = 5
SURFACE_MIN_SCORE = 7

# Signal sampling
COMMIT_SAMPLE_SIZE = 100
COMMIT_SIZE_SAMPLE = 8
LARGE_COMMIT_CHANGES = 500
CONTRIBUTOR_SAMPLE_SIZE = 100
CONTRIBUTOR_DETAILS_LIMIT = 10

# Emoji reaction probe
ISSUE_PAGE_SIZE = 100
ISSUE_MAX_PAGES = 5

# Rate-limit backoff
MAX_REQUEST_ATTEMPTS = 5
RATE_LIMIT_MIN_WAIT = 1.0
RATE_LIMIT_MAX_WAIT = 300.0
RATE_LIMIT_DEFAULT_WAIT = 90.0

# Discovery
DISCOVERY_QUERY_DELAY = 1.5
DISCOVERY_RESULTS_PER_QUERY = 50
CANDIDATE_POOL_FACTOR = 8
VERIFY_POOL_FACTOR = 12
STAR_BONUS_STEP = 25
STAR_BONUS_CAP = 3

DEFAULT_BRANCH_FALLBACK = "main"
