"""Validation of client signature references."""

from __future__ import annotations

from urllib.parse import urlparse

from app.errors import ValidationFailed


def is_url_like(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def validate_signature_url(url: str, allowed_hosts: list[str] | None = None) -> str:
    """Return `url` if it references a stored signature image, else raise.

    Any http(s) URL with a host is accepted unless `allowed_hosts` is set,
    in which case the host must equal or be a subdomain of one of them.
    """
    if not is_url_like(url):
        raise _invalid("Invalid signature URL format")

    if allowed_hosts:
        host = (urlparse(url.strip()).hostname or "").lower()
        allowed = [h.lower().lstrip(".") for h in allowed_hosts]
        if not any(host == h or host.endswith("." + h) for h in allowed):
            raise _invalid("Invalid signature URL: must reference the signature storage host")

    return url.strip()


def _invalid(message: str) -> ValidationFailed:
    return ValidationFailed(message, {"signature_url": [message]})
