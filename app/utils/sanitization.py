"""
Security & Sanitization Utilities

1. Strip script / event-handler markup from free-text input
2. Redact secrets and card numbers before they reach the logs
"""

import re
from typing import Any, Optional


# ============================================================================
# XSS SANITIZATION
# ============================================================================

def strip_dangerous_tags(content: Optional[str]) -> Optional[str]:
    """
    Remove markup that could execute in the dashboard:
    - <script> / <style> tags
    - Event handlers (onclick=, onerror=, ...)
    - javascript: / vbscript: / data:text/html URLs
    """
    if not content:
        return content

    content = re.sub(r'<script[^>]*>.*?</script>', '', content, flags=re.IGNORECASE | re.DOTALL)
    content = re.sub(r'<style[^>]*>.*?</style>', '', content, flags=re.IGNORECASE | re.DOTALL)

    # Any on<event>= attribute, quoted or not
    content = re.sub(r'\bon\w+\s*=\s*["\'][^"\']*["\']', '', content, flags=re.IGNORECASE)
    content = re.sub(r'\bon\w+\s*=\s*[^\s>]+', '', content, flags=re.IGNORECASE)

    content = re.sub(r'javascript\s*:', '', content, flags=re.IGNORECASE)
    content = re.sub(r'vbscript\s*:', '', content, flags=re.IGNORECASE)
    content = re.sub(r'data\s*:\s*text/html', '', content, flags=re.IGNORECASE)

    return content


# ============================================================================
# SAFE STRING TRUNCATION
# ============================================================================

def safe_truncate(value: str, max_length: int, suffix: str = "...") -> str:
    if not value or len(value) <= max_length:
        return value

    truncate_at = max_length - len(suffix)
    if truncate_at <= 0:
        return suffix[:max_length]

    return value[:truncate_at] + suffix


# ============================================================================
# LOGGING SANITIZATION
# ============================================================================

def sanitize_for_log(value: Any, max_length: int = 200) -> str:
    """
    Make a value safe to log: masks passwords / secrets / API keys and
    16-digit card numbers, then truncates.
    """
    if value is None:
        return "null"

    str_value = str(value)

    str_value = re.sub(
        r'(password|passwd|pwd|secret|token|api_key)[\"\']?\s*[:=]\s*[\"\']?[^\s\"\']+',
        r'\1: [REDACTED]',
        str_value,
        flags=re.IGNORECASE
    )

    str_value = re.sub(r'\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b', '[CARD_REDACTED]', str_value)

    return safe_truncate(str_value, max_length)
