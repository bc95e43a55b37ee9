"""Heuristic field extraction: turns search snippets into NormalizedJob objects.

Design rules:
  - Every extractor is a pure, total function: text in, value or None out.
  - Patterns are tried in priority order; the first match wins.
  - Malformed or empty input never raises, it degrades to the documented
    default (None, "Unknown Company", "full-time", "Other").
  - Extraction is best-effort: snippets are unstructured and a wrong
    company/location guess is expected from time to time.
"""

import calendar
import hashlib
import itertools
import logging
import re
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone

from jobfeed.core.schemas import JobSource, JobType, NormalizedJob, RawResult

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_COMPANY = "Unknown Company"
DEFAULT_LOCATION = "Remote"
DEFAULT_JOB_TYPE: JobType = "full-time"
DEFAULT_SOURCE: JobSource = "Other"
DEFAULT_ENGINE = "google"

ID_SLUG_LENGTH = 50

# A run of capitalised words: "Acme", "Acme Corp", "Ernst & Young", "New York"
_WORD = r"[A-Z](?:[\w&'-]|\.(?=\w))*"
_NAME = rf"{_WORD}(?:[ \t]+(?:&[ \t]+)?{_WORD})*"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_synthetic_ids = itertools.count(1)


# ---------------------------------------------------------------------------
# id
# ---------------------------------------------------------------------------


def generate_id(url: str | None) -> str:
    """Derive a stable id from a URL, or a synthetic one when there is no URL.

    The URL form is the first 50 characters of the URL with every
    non-alphanumeric replaced by ``_``, followed by a short digest of the full
    URL so that long URLs sharing a prefix stay distinct.
    """
    if not url:
        return synthetic_id()
    slug = _NON_ALNUM.sub("_", url)[:ID_SLUG_LENGTH]
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:8]
    return f"{slug}_{digest}"


def synthetic_id() -> str:
    """Monotonic fallback id for results without a URL."""
    return f"job_{time.time_ns()}_{next(_synthetic_ids)}"


# ---------------------------------------------------------------------------
# company / location
# ---------------------------------------------------------------------------

_TITLE_COMPANY = re.compile(rf"(?i:\bat)\s+({_NAME})")
_CONTENT_COMPANY = re.compile(rf"(?i:\b(?:company|at|join))\b\s*:?\s*({_NAME})")


def extract_company(title: str | None, content: str | None) -> str:
    """``<role> at <Company>`` in the title, then ``company:/at/join`` in content."""
    for pattern, text in ((_TITLE_COMPANY, title), (_CONTENT_COMPANY, content)):
        if not text:
            continue
        match = pattern.search(text)
        if match:
            name = _clean_name(match.group(1))
            if name:
                return name
    return UNKNOWN_COMPANY


_LOCATION_PATTERNS = (
    re.compile(rf"(?i:\blocation)\s*:\s*({_NAME})"),
    re.compile(rf"(?i:\bbased\s+in)\s+({_NAME})"),
)
_WORKPLACE_TOKEN = re.compile(r"\b(remote|hybrid|on-?site|office)\b", re.IGNORECASE)
_WORKPLACE_LABELS = {
    "remote": "Remote",
    "hybrid": "Hybrid",
    "onsite": "Onsite",
    "on-site": "Onsite",
    "office": "Office",
}


def extract_location(content: str | None) -> str | None:
    """``location: X``, ``based in X``, or a bare remote/hybrid/onsite/office token."""
    if not content:
        return None
    for pattern in _LOCATION_PATTERNS:
        match = pattern.search(content)
        if match:
            name = _clean_name(match.group(1))
            if name:
                return name
    match = _WORKPLACE_TOKEN.search(content)
    if match:
        return _WORKPLACE_LABELS[match.group(1).lower()]
    return None


def _clean_name(value: str) -> str:
    return value.strip().rstrip(".,;:-&").strip()


# ---------------------------------------------------------------------------
# posted date
# ---------------------------------------------------------------------------

_MONTHS = (
    "january|february|march|april|may|june|july|august|september|october|november|december"
    "|jan|feb|mar|apr|jun|jul|aug|sept|sep|oct|nov|dec"
)
_MONTH_ABBR = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")

_RELATIVE = re.compile(r"\b([1-9]\d*)\s+(hour|day|week|month)s?\s+ago\b", re.IGNORECASE)
_MONTH_DAY_YEAR = re.compile(
    rf"\b({_MONTHS})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b", re.IGNORECASE,
)
_DAY_MONTH_YEAR = re.compile(
    rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+({_MONTHS})\.?,?\s+(\d{{4}})\b", re.IGNORECASE,
)
_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_SLASH_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
_TODAY_YESTERDAY = re.compile(r"\b(today|yesterday)\b", re.IGNORECASE)


def _relative(content: str, now: datetime) -> datetime | None:
    match = _RELATIVE.search(content)
    if not match:
        return None
    n = int(match.group(1))
    unit = match.group(2).lower()
    if unit == "hour":
        return now - timedelta(hours=n)
    if unit == "day":
        return now - timedelta(days=n)
    if unit == "week":
        return now - timedelta(weeks=n)
    return _subtract_months(now, n)


def _slash_date(content: str, now: datetime) -> datetime | None:
    match = _SLASH_DATE.search(content)
    if not match:
        return None
    month, day, year = (int(g) for g in match.groups())
    return _absolute(year, month, day, now)


def _month_day_year(content: str, now: datetime) -> datetime | None:
    match = _MONTH_DAY_YEAR.search(content)
    if not match:
        return None
    month, day, year = match.groups()
    return _absolute(int(year), _month_number(month), int(day), now)


def _day_month_year(content: str, now: datetime) -> datetime | None:
    match = _DAY_MONTH_YEAR.search(content)
    if not match:
        return None
    day, month, year = match.groups()
    return _absolute(int(year), _month_number(month), int(day), now)


def _iso_date(content: str, now: datetime) -> datetime | None:
    match = _ISO_DATE.search(content)
    if not match:
        return None
    year, month, day = (int(g) for g in match.groups())
    return _absolute(year, month, day, now)


def _today_yesterday(content: str, now: datetime) -> datetime | None:
    match = _TODAY_YESTERDAY.search(content)
    if not match:
        return None
    if match.group(1).lower() == "yesterday":
        return now - timedelta(days=1)
    return now


# Tier 1 (relative) before tier 2 (absolute, then today/yesterday).
# Slash dates are month first: 03/15/2025.
_DATE_MATCHERS: tuple[Callable[[str, datetime], datetime | None], ...] = (
    _relative,
    _slash_date,
    _month_day_year,
    _day_month_year,
    _iso_date,
    _today_yesterday,
)


def extract_posted_date(content: str | None, now: datetime | None = None) -> datetime | None:
    """Resolve a posting date from snippet text against ``now``.

    Returns None when nothing matches. A missing date means "unknown", it is
    never replaced by the current time.
    """
    if not content:
        return None
    reference = now or datetime.now(timezone.utc)
    for matcher in _DATE_MATCHERS:
        try:
            value = matcher(content, reference)
        except (ValueError, OverflowError):
            logger.debug("Date matcher %s rejected %r", matcher.__name__, content[:80])
            continue
        if value is not None:
            return value
    return None


def _month_number(name: str) -> int:
    return _MONTH_ABBR.index(name[:3].lower()) + 1


def _absolute(year: int, month: int, day: int, now: datetime) -> datetime:
    return datetime(year, month, day, tzinfo=now.tzinfo)


def _subtract_months(dt: datetime, months: int) -> datetime:
    index = dt.year * 12 + (dt.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


# ---------------------------------------------------------------------------
# salary / job type / source
# ---------------------------------------------------------------------------

_AMOUNT = r"\d+(?:,\d{3})*(?:\.\d{2})?"

_SALARY_PATTERNS = (
    re.compile(rf"\${_AMOUNT}\s*(?:-|–|to)\s*\${_AMOUNT}"),
    re.compile(rf"\${_AMOUNT}"),
    re.compile(r"\d+(?:[.,]\d+)?(?:\s*-\s*\d+(?:[.,]\d+)?)?\s*(?:LPA|per\s+annum|annually)\b", re.IGNORECASE),
    re.compile(r"\d+(?:,\d+)?\s*(?:k|thousand)\s*(?:per\s+month|monthly)\b", re.IGNORECASE),
)


def extract_salary(content: str | None) -> str | None:
    """Return the raw salary text as written in the snippet, or None."""
    if not content:
        return None
    for pattern in _SALARY_PATTERNS:
        match = pattern.search(content)
        if match:
            return match.group(0).strip()
    return None


_JOB_TYPE_PATTERNS: tuple[tuple[re.Pattern[str], JobType], ...] = (
    (re.compile(r"\bfull[\s-]?time\b", re.IGNORECASE), "full-time"),
    (re.compile(r"\bpart[\s-]?time\b", re.IGNORECASE), "part-time"),
    (re.compile(r"\b(?:contract|contractor|freelance|freelancer)\b", re.IGNORECASE), "contract"),
    (re.compile(r"\b(?:internship|internships|intern|interns)\b", re.IGNORECASE), "internship"),
)


def extract_job_type(content: str | None) -> JobType:
    """Keyword scan; ambiguous or empty text defaults to full-time."""
    if content:
        for pattern, job_type in _JOB_TYPE_PATTERNS:
            if pattern.search(content):
                return job_type
    return DEFAULT_JOB_TYPE


_SOURCE_VOCABULARY: tuple[tuple[str, JobSource], ...] = (
    ("naukri", "Naukri"),
    ("linkedin", "LinkedIn"),
    ("indeed", "Indeed"),
    ("glassdoor", "Glassdoor"),
    ("monster", "Monster"),
)


def extract_source(text: str | None) -> JobSource:
    """Map a URL or engine name onto a known job platform, else "Other"."""
    if not text:
        return DEFAULT_SOURCE
    lowered = text.lower()
    for needle, source in _SOURCE_VOCABULARY:
        if needle in lowered:
            return source
    return DEFAULT_SOURCE


# ---------------------------------------------------------------------------
# normalization
# ---------------------------------------------------------------------------


def normalize_result(raw: RawResult, now: datetime | None = None) -> NormalizedJob:
    """Convert one backend result into a NormalizedJob."""
    title = (raw.title or "").strip() or UNKNOWN_TITLE
    content = raw.content or ""
    url = (raw.url or "").strip()
    engine = raw.engine or DEFAULT_ENGINE

    return NormalizedJob(
        id=generate_id(url),
        title=title,
        company=extract_company(title, content),
        location=extract_location(content) or DEFAULT_LOCATION,
        description=content,
        url=url,
        posted_date=extract_posted_date(content, now),
        salary=extract_salary(content),
        job_type=extract_job_type(content),
        source=extract_source(url or engine),
        engine=engine,
        engine_score=raw.score or 0.0,
    )


def normalize_results(raws: Iterable[RawResult], now: datetime | None = None) -> list[NormalizedJob]:
    """Normalize a page of results with a single reference time."""
    reference = now or datetime.now(timezone.utc)
    return [normalize_result(raw, reference) for raw in raws]
