"""
Common utility functions for the bundler
"""

import json
import logging
from typing import Any, Optional
from urllib.parse import urljoin, urlsplit

from .constants import LOG_FORMAT

# Setup module logger
logger = logging.getLogger(__name__)


def is_remote_url(module_id: Optional[str]) -> bool:
    """Check whether a module id is an absolute http(s) URL"""
    return bool(module_id) and module_id.startswith(("http://", "https://"))


def url_origin(url: str) -> str:
    """
    Get the origin (scheme://host[:port]) of a URL

    Args:
        url: Absolute URL

    Returns:
        Origin without trailing slash
    """
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def join_url(base: str, relative: str) -> str:
    """Resolve a relative specifier against an absolute URL"""
    return urljoin(base, relative)


def to_js_literal(value: Any) -> str:
    """
    Serialize a value as a JavaScript literal

    Args:
        value: JSON-compatible value

    Returns:
        JSON text safe to embed in a module or an inline script
    """
    text = json.dumps(value, ensure_ascii=False)
    # Keep inline <script> blocks closed only by their own tag
    return text.replace("</", "<\\/")


def format_bytes(size_bytes: int) -> str:
    """
    Format byte size as human readable string

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.2 KB")
    """
    if size_bytes == 0:
        return "0 B"

    units = ['B', 'KB', 'MB', 'GB']
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024.0 and unit_index < len(units) - 1:
        size /= 1024.0
        unit_index += 1

    return f"{size:.1f} {units[unit_index]}"


def setup_logging(level: int = logging.INFO, format_str: Optional[str] = None) -> None:
    """
    Setup logging for the bundler

    Args:
        level: Logging level
        format_str: Custom format string
    """
    if format_str is None:
        format_str = LOG_FORMAT

    bundler_logger = logging.getLogger('pagesmith')

    if not bundler_logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(format_str)
        handler.setFormatter(formatter)
        bundler_logger.addHandler(handler)
        bundler_logger.setLevel(level)
        bundler_logger.propagate = False
