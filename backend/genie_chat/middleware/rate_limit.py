from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from genie_chat.config import settings

# Guards the credentialed relay; memory:// by default, redis:// in production
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
)
