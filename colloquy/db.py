"""
colloquy/db.py
Database connection helpers for Colloquy.
All database access goes through this module.

WARNING: get_supabase_admin() returns a service-role client that bypasses
Row Level Security.  It is only used by the store's feedback upsert and must
never be handed to request-facing code.
"""

import os

import pandas as pd
import psycopg2
import streamlit as st
from psycopg2.extras import RealDictCursor
from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()


# ─── Private helpers ─────────────────────────────────────────────────────────

def _get_secret(key: str, default: str | None = None) -> str | None:
    """
    Resolve a secret by name.

    Tries st.secrets first (Streamlit deployments), then falls back to
    os.environ (local development and the sweep job, via the .env loaded
    above).  Returns `default` if the key is absent in both sources.
    """
    try:
        return st.secrets[key]
    except Exception:
        return os.environ.get(key, default)


# ─── Supabase admin client (atomic upserts) ──────────────────────────────────

def get_supabase_admin() -> Client:
    """
    Return a Supabase client authenticated with the service-role key.

    Used for the feedback upsert, which relies on PostgREST's ON CONFLICT
    handling to stay atomic under concurrent submissions.
    """
    url = _get_secret("SUPABASE_URL")
    key = _get_secret("SUPABASE_SERVICE_ROLE_KEY")
    return create_client(url, key)


# ─── Direct psycopg2 connection ──────────────────────────────────────────────

def get_pg_connection():
    """
    Return a raw psycopg2 connection to the feedback database.

    sslmode defaults to 'require' (override with DB_SSLMODE for local
    databases) and connect_timeout is 15 seconds.  The caller is responsible
    for closing the connection when finished.
    """
    return psycopg2.connect(
        host=_get_secret("DB_HOST"),
        port=_get_secret("DB_PORT", "5432"),
        dbname=_get_secret("DB_NAME"),
        user=_get_secret("DB_USER"),
        password=_get_secret("DB_PASSWORD"),
        sslmode=_get_secret("DB_SSLMODE", "require"),
        connect_timeout=15,
    )


# ─── Read helpers ────────────────────────────────────────────────────────────

def fetch_rows(sql: str, params: tuple = ()) -> list[dict]:
    """
    Execute a parameterised SELECT and return the rows as a list of dicts.

    Not cached: used for reads that feed a state transition or a write
    (status checks, eligibility), where a stale row would be wrong.  Returns
    an empty list when the query produces no rows.
    """
    conn = get_pg_connection()
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params)
            return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


@st.cache_data(ttl=60, show_spinner=False)
def query_df(sql: str, params: tuple = ()) -> pd.DataFrame:
    """
    Execute a parameterised SELECT query and return results as a DataFrame.

    Results are cached for 60 seconds; use for reporting reads only, where
    a minute of staleness is acceptable.  Returns an empty DataFrame (never
    None) when the query produces no rows.
    """
    rows = fetch_rows(sql, params)
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows)


# ─── Write helpers ───────────────────────────────────────────────────────────

def run_query(sql: str, params: tuple = ()) -> dict | None:
    """
    Execute a parameterised write query (INSERT, UPDATE, or DELETE) and commit.

    Returns the first row as a dict when the statement has a RETURNING
    clause, otherwise None.  Raises any database exception to the caller;
    exceptions are never swallowed silently.
    """
    conn = get_pg_connection()
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params)
            row = cur.fetchone() if cur.description else None
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    return dict(row) if row else None
