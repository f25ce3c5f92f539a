"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without alembic.context.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus, urlparse, urlunparse

_DRIVER_SCHEME = "postgresql+psycopg2://"


def _normalize_scheme(url: str) -> str:
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return _DRIVER_SCHEME + url[len(prefix):]
    return url


def _with_password(url: str, password: str) -> str:
    parsed = urlparse(url)
    if parsed.password or not password:
        return url
    netloc = f"{quote_plus(parsed.username or '')}:{quote_plus(password)}@{parsed.hostname or ''}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def _keyvalue_dsn_to_url(dsn: str) -> str:
    """Convert a simple libpq `key=value` DSN (no quoted values) to a URL."""
    tokens = dict(part.split("=", 1) for part in dsn.split() if "=" in part)
    user = quote_plus(tokens.get("user", ""))
    password = quote_plus(tokens.get("password", ""))
    dbname = quote_plus(tokens.get("dbname", ""))
    host = tokens.get("host", "localhost")
    port = tokens.get("port", "5432")
    if host.startswith("/"):
        return f"{_DRIVER_SCHEME}{user}:{password}@/{dbname}?host={quote_plus(host)}"
    return f"{_DRIVER_SCHEME}{user}:{password}@{host}:{port}/{dbname}"


def get_database_url() -> str:
    """SQLAlchemy URL built from DATABASE_URL (and DB_PASSWORD if the DSN lacks one)."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" not in url:
        url = _keyvalue_dsn_to_url(url)
    return _with_password(_normalize_scheme(url), os.environ.get("DB_PASSWORD", ""))
