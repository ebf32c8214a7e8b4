"""
Shared database utilities.
Connection-string resolution for the snapshot loader and the API.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def get_conn_str() -> str:
    """Return the PostgreSQL connection string, or "" when unset.

    POSTGRES_CONNECTION_STRING wins over DATABASE_URL; a postgres:// scheme
    is rewritten to postgresql:// for psycopg2.
    """
    url = (os.getenv("POSTGRES_CONNECTION_STRING") or os.getenv("DATABASE_URL") or "").strip()
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def require_conn_str(conn_str: str = "") -> str:
    """*conn_str* if given, else the environment value; raise when neither is set."""
    url = conn_str or get_conn_str()
    if not url:
        raise RuntimeError("POSTGRES_CONNECTION_STRING is not set")
    return url
