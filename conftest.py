"""
Pytest configuration and shared fixtures.

Test environment variables are set here, before any app imports, so the
module-level settings and engine pick them up. Values already present in
the environment (e.g. from a CI job) take precedence.
"""

import os
import tempfile

os.environ.setdefault(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), "guest_book_test.db"),
)
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("AUTH_SECRET", "test-auth-secret")

# Clear settings cache before any app imports to ensure test env vars are used
from app.config import get_settings  # noqa: E402
get_settings.cache_clear()
