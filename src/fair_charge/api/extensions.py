from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from fair_charge import config

# Per client address; analyze routes add tighter per-route limits on top.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[config.RATE_LIMIT_DEFAULT],
    storage_uri=config.RATE_LIMIT_STORAGE_URI,
    headers_enabled=True,
)
