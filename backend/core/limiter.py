from slowapi import Limiter
from slowapi.util import get_remote_address

from config import settings

# Partagé entre main.py (handler 429) et les routers (décorateurs)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
