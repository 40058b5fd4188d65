"""Runtime settings for the entity resolution engine.

Values come from the environment (a local .env is loaded first):

  FUZZY_MATCH_THRESHOLD        contact-name similarity needed to reuse a contact
  FUZZY_REVIEW_FLOOR           scores in [floor, threshold) go to human review
  SIMILARITY_ALGORITHM         token_sort | ratio | jaro_winkler
  CONSUMER_EMAIL_DOMAINS_EXTRA comma-separated additions to the consumer set
  RESOLUTION_CONCURRENCY       records processed at once (1 = sequential)

Usage:
    from config import load_settings
    settings = load_settings()
"""
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

# Free mailbox providers: a domain here says nothing about the employer.
CONSUMER_EMAIL_DOMAINS = frozenset({
    "gmail.com",
    "googlemail.com",
    "yahoo.com",
    "yahoo.co.uk",
    "hotmail.com",
    "hotmail.co.uk",
    "outlook.com",
    "icloud.com",
    "me.com",
    "mac.com",
    "aol.com",
    "live.com",
    "msn.com",
    "protonmail.com",
    "proton.me",
    "gmx.com",
    "mail.com",
    "yandex.com",
    "zoho.com",
})

DEFAULT_FUZZY_MATCH_THRESHOLD = 0.80
DEFAULT_FUZZY_REVIEW_FLOOR = 0.70
DEFAULT_SIMILARITY_ALGORITHM = "token_sort"


@dataclass(frozen=True)
class Settings:
    fuzzy_match_threshold: float = DEFAULT_FUZZY_MATCH_THRESHOLD
    fuzzy_review_floor: float = DEFAULT_FUZZY_REVIEW_FLOOR
    similarity_algorithm: str = DEFAULT_SIMILARITY_ALGORITHM
    consumer_domains: frozenset[str] = field(default=CONSUMER_EMAIL_DOMAINS)
    concurrency: int = 1

    def __post_init__(self) -> None:
        if not 0.0 <= self.fuzzy_match_threshold <= 1.0:
            raise ValueError(
                f"fuzzy_match_threshold must be within [0, 1], got {self.fuzzy_match_threshold}"
            )
        if not 0.0 <= self.fuzzy_review_floor <= self.fuzzy_match_threshold:
            raise ValueError(
                "fuzzy_review_floor must be within [0, fuzzy_match_threshold], "
                f"got {self.fuzzy_review_floor}"
            )
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")


def _extra_consumer_domains() -> frozenset[str]:
    raw = os.environ.get("CONSUMER_EMAIL_DOMAINS_EXTRA", "")
    return frozenset(d.strip().lower() for d in raw.split(",") if d.strip())


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        fuzzy_match_threshold=float(
            os.environ.get("FUZZY_MATCH_THRESHOLD", DEFAULT_FUZZY_MATCH_THRESHOLD)
        ),
        fuzzy_review_floor=float(
            os.environ.get("FUZZY_REVIEW_FLOOR", DEFAULT_FUZZY_REVIEW_FLOOR)
        ),
        similarity_algorithm=os.environ.get(
            "SIMILARITY_ALGORITHM", DEFAULT_SIMILARITY_ALGORITHM
        ),
        consumer_domains=CONSUMER_EMAIL_DOMAINS | _extra_consumer_domains(),
        concurrency=int(os.environ.get("RESOLUTION_CONCURRENCY", "1")),
    )
