"""Sanitization utilities for logging."""
from urllib.parse import urlparse, urlunparse, parse_qs, urlencode
import re

SENSITIVE_PARAMS = ("appid", "key", "api_key", "apikey", "token")


def sanitize_url(url: str) -> str:
    """Redact API keys from a URL's query string before it is logged."""
    try:
        parsed = urlparse(url)
        if parsed.query:
            query_params = parse_qs(parsed.query, keep_blank_values=True)
            for param in SENSITIVE_PARAMS:
                if param in query_params:
                    query_params[param] = ['[REDACTED]']
            parsed = parsed._replace(query=urlencode(query_params, doseq=True, safe="[]"))
        return urlunparse(parsed)
    except Exception:
        # If parsing fails, return a safe placeholder
        return "[REDACTED_URL]"


def sanitize_for_logging(data: str, max_length: int = 100) -> str:
    """Truncate caller-supplied text and strip control characters before logging."""
    if not data or not isinstance(data, str):
        return str(data)[:max_length] if data else ""
    if len(data) > max_length:
        data = data[:max_length] + "..."
    data = re.sub(r'[\r\n\t\x00-\x1f\x7f-\x9f]', ' ', data)
    return re.sub(r'\s+', ' ', data).strip()
