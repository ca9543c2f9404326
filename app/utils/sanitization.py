import re

_TAG_RE = re.compile(r'<[^>]*>')


def sanitize_string(v):
    if not isinstance(v, str):
        return v
    # Strip HTML tags, then surrounding whitespace
    return _TAG_RE.sub('', v).strip()


def blank_to_none(v):
    """Optional text fields arrive as "" from forms; store them as NULL."""
    v = sanitize_string(v)
    if isinstance(v, str) and not v:
        return None
    return v
