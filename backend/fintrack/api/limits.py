from slowapi import Limiter
from slowapi.util import get_remote_address

from fintrack.config import settings

# Applied to the endpoints that call the AI model on the user's behalf
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
