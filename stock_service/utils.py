import unicodedata
from datetime import datetime, timezone


def normalize(text):
    """Lower-case ``text`` and strip diacritics so "Açúcar" matches "acucar"."""
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def matches(term, *values):
    """True when the normalized term is a substring of any of ``values``."""
    needle = normalize(term)
    return any(needle in normalize(value) for value in values)


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    # Naive datetimes are taken to be UTC already
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date(value):
    """Parse an ISO-8601 date filter, returning None when it cannot be read."""
    if not value:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def page_window(page, page_size):
    page = max(int(page), 1)
    page_size = max(int(page_size), 1)
    return (page - 1) * page_size, page_size
