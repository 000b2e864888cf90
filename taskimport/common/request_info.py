"""Helpers for extracting request information for audit logging."""

from __future__ import annotations

from typing import Optional

from fastapi import Request


def get_request_ip(request: Request) -> Optional[str]:
    """Extract IP address from request."""
    # Proxied requests carry the client first in X-Forwarded-For
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_request_user_agent(request: Request) -> Optional[str]:
    """Extract user agent from request."""
    return request.headers.get("User-Agent")
