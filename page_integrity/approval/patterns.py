"""Constant pattern tables for approval-section recognition.

Tables are tuples of ``(tag, compiled pattern)`` built once at import.
Role patterns are ordered most specific first, so "QA Reviewer:" resolves
to ``qa_reviewer`` rather than ``reviewer``.
"""

import re

from .models import SignatureRole

# A label keyword must be followed by whitespace, a colon or end of text.
_END = r"(?:[\s:]|$)"


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p + _END, re.IGNORECASE) for p in patterns)


ROLE_PATTERNS: tuple[tuple[SignatureRole, tuple[re.Pattern[str], ...]], ...] = (
    (
        SignatureRole.QA_APPROVER,
        _compile(
            r"qa\s+approv(?:al|ed|er)",
            r"quality\s+assurance\s+approv(?:al|ed|er)?",
            r"qc\s+approv(?:al|ed|er)",
        ),
    ),
    (
        SignatureRole.QA_REVIEWER,
        _compile(
            r"qa\s+review(?:ed|er)?",
            r"quality\s+assurance\s+review(?:ed|er)?",
            r"qc\s+review(?:ed|er)?",
        ),
    ),
    (
        SignatureRole.RELEASED_BY,
        _compile(r"released\s+by", r"batch\s+release", r"release"),
    ),
    (
        SignatureRole.VERIFIER,
        _compile(
            r"verif(?:ied|ier)\s+by",
            r"verifier",
            r"verification",
            r"confirmed\s+by",
        ),
    ),
    (
        SignatureRole.REVIEWER,
        _compile(r"review(?:ed)?\s+by", r"reviewer", r"second\s+check"),
    ),
    (
        SignatureRole.OPERATOR,
        _compile(
            r"operator",
            r"performed\s+by",
            r"recorded\s+by",
            r"executed\s+by",
            r"conducted\s+by",
            r"tech(?:nician)?",
        ),
    ),
    (
        SignatureRole.SUPERVISOR,
        _compile(r"supervisor", r"supv", r"team\s+lead", r"lead"),
    ),
    (
        SignatureRole.MANAGER,
        _compile(r"production\s+manager", r"manager", r"mgr"),
    ),
    (
        SignatureRole.CHECKED_BY,
        _compile(r"checked\s+by", r"inspected\s+by", r"check"),
    ),
    (
        SignatureRole.PERFORMED_BY,
        _compile(r"done\s+by", r"carried\s+out\s+by"),
    ),
)

DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    # 12/03/2024, 3-12-24
    re.compile(r"(?<!\d)\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}(?!\d)"),
    # 2024-03-12
    re.compile(r"(?<!\d)\d{4}[-/]\d{1,2}[-/]\d{1,2}(?!\d)"),
    # 12 Mar 2024, 12-MAR-2024
    re.compile(
        r"\d{1,2}[\s-]+(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*"
        r"[\s-]+\d{2,4}",
        re.IGNORECASE,
    ),
    # March 12, 2024
    re.compile(
        r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*"
        r"\s+\d{1,2},?\s+\d{4}",
        re.IGNORECASE,
    ),
)

SIGNATURE_COLUMN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bsign(?:ature|ed)?\b", re.IGNORECASE),
    re.compile(r"\binitials?\b", re.IGNORECASE),
    re.compile(r"\b[a-z]+(?:ed|ne)\s+by\b", re.IGNORECASE),
)

# Mandated order of required sign-offs.
CANONICAL_SEQUENCE: tuple[SignatureRole, ...] = (
    SignatureRole.OPERATOR,
    SignatureRole.REVIEWER,
    SignatureRole.QA_REVIEWER,
    SignatureRole.QA_APPROVER,
)

# Any one of these satisfies the final approval slot.
FINAL_APPROVAL_ROLES: tuple[SignatureRole, ...] = (
    SignatureRole.VERIFIER,
    SignatureRole.MANAGER,
    SignatureRole.RELEASED_BY,
    SignatureRole.QA_APPROVER,
)


def identify_role(text: str) -> SignatureRole | None:
    """Return the role named by a label, or ``None`` if it names none."""
    for role, patterns in ROLE_PATTERNS:
        if any(p.search(text) for p in patterns):
            return role
    return None


def find_date(text: str) -> str | None:
    """Return the first date found in ``text``."""
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def is_date_only(text: str) -> bool:
    """True when ``text`` holds a date and nothing else."""
    stripped = text.strip()
    return any(p.fullmatch(stripped) for p in DATE_PATTERNS)


def is_signature_column(header: str) -> bool:
    return any(p.search(header) for p in SIGNATURE_COLUMN_PATTERNS)


def contains_trigger(text: str, phrases: list[str]) -> bool:
    """Case-insensitive, whitespace-tolerant search for any trigger phrase."""
    normalized = " ".join(text.lower().split())
    return any(" ".join(p.lower().split()) in normalized for p in phrases)
