"""
Request identity helpers.

Player identity is resolved upstream (session layer) and forwarded as the
X-User-Id header; this service trusts it as an opaque id. Operator endpoints
use a shared X-Admin-Key secret.
"""
import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from speedtype.core.config import settings
from speedtype.core.errors import PermissionError, UnauthorizedError


@dataclass
class AdminActor:
    """Represents an authenticated operator."""
    actor_id: str  # "key:<hash>"


def get_player_id(request: Request) -> Optional[str]:
    """Return the forwarded player id, or None for anonymous requests."""
    raw = request.headers.get("X-User-Id", "").strip()
    return raw or None


def require_player(request: Request) -> str:
    player_id = get_player_id(request)
    if not player_id:
        raise UnauthorizedError("Unauthorized - Please log in")
    return player_id


def require_admin(request: Request) -> AdminActor:
    expected_key = settings.ADMIN_KEY
    header_key = request.headers.get("X-Admin-Key", "").strip()
    if not expected_key or not header_key or not hmac.compare_digest(header_key, expected_key):
        raise PermissionError("Admin key required")
    key_hash = hashlib.sha256(header_key.encode()).hexdigest()[:16]
    return AdminActor(actor_id=f"key:{key_hash}")
