"""Shared slowapi limiter for the app and its routers."""

import os

from dotenv import load_dotenv

from slowapi import Limiter
from slowapi.util import get_remote_address

load_dotenv()

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Rate limiter configuration
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)
