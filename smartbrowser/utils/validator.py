"""Input validation and sanitisation.

Every value that crosses a trust boundary (HTTP bodies, task payloads,
LLM replies, error messages going back to callers) passes through the
helpers here.  Validation failures raise :class:`ValidationError`;
anything that looks like injected markup or a blocked destination raises
:class:`SecurityError`.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from smartbrowser.config import settings
from smartbrowser.utils.exceptions import SecurityError, ValidationError

MAX_INPUT_LENGTH = 10_000
MAX_QUERY_LENGTH = 1_000
MAX_CONTENT_LENGTH = 50_000

VALID_PRIORITIES = ("low", "medium", "high", "critical")

_DANGEROUS_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"document\.write", re.IGNORECASE),
    re.compile(r"window\.location", re.IGNORECASE),
    re.compile(r"\.innerHTML\s*=", re.IGNORECASE),
]

# Things that must never leak back to a caller inside an error message.
_SECRET_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"sk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"(?i)(api[_-]?key|authorization|x-api-key)\s*[:=]\s*\S+"),
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._\-]+"),
]
# Absolute paths only; the lookbehind keeps URL paths intact.
_PATH_PATTERN = re.compile(r"(?<![\w:/.])(?:[A-Za-z]:\\|/)(?:[\w.\-]+[\\/])+[\w.\-]+")


class Validator:
    """Stateful validator holding the blocked-domain list.

    Parameters
    ----------
    blocked_domains:
        Hostnames that may never be visited.  Defaults to
        ``settings.blocked_domains``.
    """

    def __init__(self, blocked_domains: list[str] | None = None) -> None:
        domains = settings.blocked_domains if blocked_domains is None else blocked_domains
        self._blocked: set[str] = {d.lower() for d in domains}

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def validate_url(self, url: str) -> str:
        """Return *url* unchanged if it is a visitable http(s) URL."""
        if not url or not isinstance(url, str):
            raise ValidationError("Invalid URL: url is required")

        parsed = urlparse(url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValidationError(f"Invalid URL: {url!r} must be an http(s) URI")
        if any(ch.isspace() for ch in url.strip()):
            raise ValidationError("Invalid URL: whitespace is not allowed")

        hostname = parsed.hostname.lower()
        if self.is_blocked_domain(hostname):
            raise SecurityError(f"Domain {hostname} is blocked")
        return url.strip()

    def is_blocked_domain(self, hostname: str) -> bool:
        return hostname.lower() in self._blocked

    def add_blocked_domain(self, domain: str) -> None:
        self._blocked.add(domain.lower())

    def remove_blocked_domain(self, domain: str) -> None:
        self._blocked.discard(domain.lower())

    def get_blocked_domains(self) -> list[str]:
        return sorted(self._blocked)

    # ------------------------------------------------------------------
    # Free text
    # ------------------------------------------------------------------

    def check_for_malicious_content(self, text: str) -> None:
        for pattern in _DANGEROUS_PATTERNS:
            if pattern.search(text):
                raise SecurityError("Input contains potentially dangerous content")

    def validate_goal_text(self, text: str, priority: str = "medium") -> str:
        """Validate a free-text goal and return its sanitised form."""
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Invalid user goal: text is required")
        if len(text) > MAX_INPUT_LENGTH:
            raise ValidationError(
                f"Invalid user goal: text must be at most {MAX_INPUT_LENGTH} characters"
            )
        if priority not in VALID_PRIORITIES:
            raise ValidationError(
                f"Invalid user goal: priority must be one of {', '.join(VALID_PRIORITIES)}"
            )
        self.check_for_malicious_content(text)
        return sanitize_string(text)

    def validate_task_payload(
        self,
        url: str | None = None,
        query: str | None = None,
        content: str | None = None,
    ) -> tuple[str | None, str | None, str | None]:
        """Validate the string parts of a task payload.

        Returns the ``(url, query, content)`` triple, sanitised.
        """
        if url:
            url = self.validate_url(url)
        if query is not None:
            if len(query) > MAX_QUERY_LENGTH:
                raise ValidationError(
                    f"Invalid task payload: query must be at most {MAX_QUERY_LENGTH} characters"
                )
            query = sanitize_string(query)
        if content is not None and len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Invalid task payload: content must be at most {MAX_CONTENT_LENGTH} characters"
            )
        return url, query, content

    def validate_llm_response(self, response: str) -> bool:
        """Return ``False`` when a model reply contains executable markup."""
        if not response or not isinstance(response, str):
            return False
        return not any(p.search(response) for p in _DANGEROUS_PATTERNS)


def sanitize_string(value: str, max_length: int = MAX_INPUT_LENGTH) -> str:
    """Strip angle brackets, script protocols and inline handlers."""
    if not value or not isinstance(value, str):
        return ""
    value = re.sub(r"[<>]", "", value)
    value = re.sub(r"javascript:", "", value, flags=re.IGNORECASE)
    value = re.sub(r"on\w+\s*=", "", value, flags=re.IGNORECASE)
    return value.strip()[:max_length]


def scrub_error_message(message: str) -> str:
    """Remove filesystem paths and credentials from *message*."""
    if not message:
        return ""
    for pattern in _SECRET_PATTERNS:
        message = pattern.sub("[redacted]", message)
    return _PATH_PATTERN.sub("[path]", message)


validator = Validator()
