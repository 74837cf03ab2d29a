"""
Core module containing configuration, token codec and link parsing.
"""

from .config import settings
from .links import extract_links, flatten_query, normalize_url, parse_links
from .token import INVALID_TOKEN_ERROR, TokenCodec, generate_token, validate_token
from .utils import now_ms, get_timestamp, safe_json_loads

__all__ = [
    "settings",
    "extract_links",
    "flatten_query",
    "normalize_url",
    "parse_links",
    "INVALID_TOKEN_ERROR",
    "TokenCodec",
    "generate_token",
    "validate_token",
    "now_ms",
    "get_timestamp",
    "safe_json_loads",
]
