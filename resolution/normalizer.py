"""Identity normalization — email validation and company domain extraction.

A domain is only a company key when it is not a consumer mailbox provider;
jane@gmail.com says nothing about Jane's employer, so its domain is dropped
and matching falls back to the company name hint.
"""
import re
from typing import Optional

from config import CONSUMER_EMAIL_DOMAINS
from schemas.identity import NormalizedIdentity

# local@label.label...tld, the same shape CRM form validation accepts.
EMAIL_PATTERN = re.compile(
    r"^[A-Za-z0-9._%+'-]+@(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,}$"
)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = " ".join(value.split())
    return value or None


def is_valid_email(email: Optional[str]) -> bool:
    email = _clean(email)
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def extract_domain(email: str) -> str:
    """Return the lower-cased, trimmed part after the last '@'."""
    return email.rsplit("@", 1)[-1].strip().lower()


def is_consumer_domain(domain: str, consumer_domains: frozenset[str] = CONSUMER_EMAIL_DOMAINS) -> bool:
    return domain.lower().strip() in consumer_domains


def normalize(
    email: Optional[str],
    company_name_hint: Optional[str] = None,
    consumer_domains: frozenset[str] = CONSUMER_EMAIL_DOMAINS,
) -> NormalizedIdentity:
    """Validate email and derive the comparable identity keys.

    Returns NormalizedIdentity(valid=False) for a missing or malformed
    email; callers must not match on it.
    """
    hint = _clean(company_name_hint)
    email = _clean(email)
    if not email or EMAIL_PATTERN.match(email) is None:
        return NormalizedIdentity(valid=False, company_name_hint=hint)

    domain: Optional[str] = extract_domain(email)
    if is_consumer_domain(domain, consumer_domains):
        domain = None
    return NormalizedIdentity(
        valid=True,
        email=email.lower(),
        domain=domain,
        company_name_hint=hint,
    )


def split_full_name(full_name: str) -> tuple[str, Optional[str]]:
    """Split on whitespace: first token is the first name, the rest the last name."""
    parts = full_name.split()
    if not parts:
        raise ValueError("full_name is empty")
    last = " ".join(parts[1:]) or None
    return parts[0], last


def company_name_from_domain(domain: str) -> str:
    """Derive a display name from a domain's primary label: acme-widgets.co.uk -> Acme-Widgets."""
    label = domain.lower().strip().removeprefix("www.").split(".")[0]
    return label.title()
