"""Unit tests for settings loading and validation."""
import pytest

from config import CONSUMER_EMAIL_DOMAINS, Settings, load_settings


def test_defaults(monkeypatch):
    for name in (
        "FUZZY_MATCH_THRESHOLD",
        "FUZZY_REVIEW_FLOOR",
        "SIMILARITY_ALGORITHM",
        "CONSUMER_EMAIL_DOMAINS_EXTRA",
        "RESOLUTION_CONCURRENCY",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.fuzzy_match_threshold == 0.80
    assert settings.fuzzy_review_floor == 0.70
    assert settings.similarity_algorithm == "token_sort"
    assert settings.consumer_domains == CONSUMER_EMAIL_DOMAINS
    assert settings.concurrency == 1


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FUZZY_MATCH_THRESHOLD", "0.9")
    monkeypatch.setenv("FUZZY_REVIEW_FLOOR", "0.85")
    monkeypatch.setenv("SIMILARITY_ALGORITHM", "jaro_winkler")
    monkeypatch.setenv("CONSUMER_EMAIL_DOMAINS_EXTRA", " Corp-Mail.net , ,fastmail.com")
    monkeypatch.setenv("RESOLUTION_CONCURRENCY", "4")
    settings = load_settings()
    assert settings.fuzzy_match_threshold == 0.9
    assert settings.fuzzy_review_floor == 0.85
    assert settings.similarity_algorithm == "jaro_winkler"
    assert {"corp-mail.net", "fastmail.com", "gmail.com"} <= settings.consumer_domains
    assert settings.concurrency == 4


@pytest.mark.parametrize(
    "kwargs",
    [
        {"fuzzy_match_threshold": 1.5},
        {"fuzzy_review_floor": 0.9},
        {"fuzzy_review_floor": -0.1},
        {"concurrency": 0},
    ],
)
def test_invalid_settings_rejected(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)
