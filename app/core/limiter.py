from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

# Shared limiter; routers decorate expensive trigger endpoints with it
limiter = Limiter(key_func=get_remote_address)

TRIGGER_LIMIT = f"{settings.rate_limit_per_minute}/minute"
