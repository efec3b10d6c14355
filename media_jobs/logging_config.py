import logging
from datetime import datetime, timezone

LOG_FORMAT = "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str = "INFO"):
    logging.basicConfig(level=(level or "INFO").upper(), format=LOG_FORMAT)
    logging.Formatter.converter = lambda *args: datetime.now(timezone.utc).timetuple()
    # httpx logs every Supabase request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def safe_preview(s, max_chars: int = 500) -> str:
    if s is None:
        return ""
    s = str(s)
    return s if len(s) <= max_chars else s[:max_chars] + "...(truncated)"
