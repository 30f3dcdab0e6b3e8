"""Shared rate limiter instance for use across route files."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from catering_stock.core.config import settings


def get_project_or_ip(request: Request) -> str:
    """Rate limit per project when the request names one, else by IP."""
    project_id = request.headers.get("X-Project-ID", "").strip()
    if project_id:
        return f"project:{project_id}:{get_remote_address(request)}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_project_or_ip, enabled=settings.rate_limit_enabled)
