import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

def to_utc(dt: datetime) -> datetime:
    # WordPress date_gmt comes without offset
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

# =========================
# Numbers
# =========================
_FLOAT_PREFIX = re.compile(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

def js_round(x: float) -> int:
    """Half-up rounding (2.5 -> 3, -2.5 -> -2); ``round()`` would give 2 and -2."""
    return int(math.floor(x + 0.5))

def parse_number(raw: Any) -> float:
    """
    Lenient numeric parse for provider string fields.
    Takes the longest numeric prefix ("1.25abc" -> 1.25); None, empty,
    unparseable and NaN all give 0.0.
    """
    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        return 0.0 if math.isnan(raw) or math.isinf(raw) else float(raw)
    m = _FLOAT_PREFIX.match(str(raw))
    if not m:
        return 0.0
    v = float(m.group(0))
    return 0.0 if math.isinf(v) else v

def parse_percent(raw: Optional[str]) -> float:
    if raw is None:
        return 0.0
    return parse_number(str(raw).replace("%", "", 1))

# =========================
# Relative time
# =========================
def time_ago(date: datetime, now: Optional[datetime] = None, compact: bool = False) -> str:
    now = to_utc(now or datetime.now(timezone.utc))
    diff = (now - to_utc(date)).total_seconds()
    hours = math.floor(diff / 3600)

    if hours < 1:
        minutes = math.floor(diff / 60)
        return f"{minutes}m ago" if compact else f"{minutes} minutes ago"
    if hours < 24:
        return f"{hours}h ago" if compact else f"{hours} hours ago"
    days = math.floor(hours / 24)
    return f"{days}d ago" if compact else f"{days} days ago"

# =========================
# HTML helpers
# =========================
_TAG = re.compile(r"<[^>]*>")
_HEADING = re.compile(r"<h([2-3])([^>]*)>([^<]+)</h[2-3]>", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

def strip_tags(html: Optional[str]) -> str:
    return _TAG.sub("", html or "")

def heading_id(text: str) -> str:
    """Anchor id for a heading, e.g. "What's New in 2.0?" -> what-s-new-in-2-0"""
    return _NON_ALNUM.sub("-", text.strip().lower()).strip("-")

def extract_headings(html: str) -> List[Dict[str, Union[str, int]]]:
    out = []
    for m in _HEADING.finditer(html or ""):
        text = m.group(3).strip()
        out.append({"id": heading_id(text), "text": text, "level": int(m.group(1))})
    return out

def add_heading_ids(html: str) -> str:
    def _sub(m: "re.Match[str]") -> str:
        level, attrs, text = m.group(1), m.group(2), m.group(3)
        return f'<h{level}{attrs} id="{heading_id(text)}">{text}</h{level}>'
    return _HEADING.sub(_sub, html or "")
