"""
State persistence.

The planning core never touches storage; only the coordinator does. Stores
hand back raw dictionaries and the caller rebuilds typed state through
AthleteProgressionState.from_dict, so corrupt blobs degrade to the baseline.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2.extras import Json
from dotenv import load_dotenv

from .errors import StorageError

logger = logging.getLogger(__name__)

ATHLETE_KEY = "athlete"
DEFAULT_DATA_DIR = Path.home() / ".bandcoach"


class StateStore:
    """Interface for progression state and history persistence."""

    def load_state(self) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def save_state(self, state: Dict[str, Any]) -> None:
        raise NotImplementedError

    def load_history(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def append_history(self, record: Dict[str, Any]) -> None:
        raise NotImplementedError


# =============================================================================
# JSON files
# =============================================================================

class JsonFileStore(StateStore):
    """
    One JSON file for the state and a JSON-lines file for history.

    Args:
        directory: Folder holding the files (created on first write)
        key: Athlete key used in file names
    """

    def __init__(self, directory, key: str = ATHLETE_KEY):
        self.directory = Path(directory)
        self.state_path = self.directory / f"{key}_state.json"
        self.history_path = self.directory / f"{key}_history.jsonl"

    def load_state(self) -> Optional[Dict[str, Any]]:
        if not self.state_path.exists():
            return None
        try:
            with open(self.state_path) as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt state file {self.state_path}, using baseline: {e}")
            return None
        except OSError as e:
            raise StorageError(f"Could not read {self.state_path}: {e}") from e
        return raw if isinstance(raw, dict) else None

    def save_state(self, state: Dict[str, Any]) -> None:
        tmp = self.state_path.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w") as f:
                json.dump(state, f, indent=2, sort_keys=True)
            os.replace(tmp, self.state_path)
        except OSError as e:
            raise StorageError(f"Could not write {self.state_path}: {e}") from e

    def load_history(self) -> List[Dict[str, Any]]:
        if not self.history_path.exists():
            return []
        records = []
        try:
            with open(self.history_path) as f:
                for n, line in enumerate(f, 1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(json.loads(line))
                    except json.JSONDecodeError:
                        logger.warning(f"Skipping malformed history line {n} in {self.history_path}")
        except OSError as e:
            raise StorageError(f"Could not read {self.history_path}: {e}") from e
        return records

    def append_history(self, record: Dict[str, Any]) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(self.history_path, "a") as f:
                f.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError as e:
            raise StorageError(f"Could not append to {self.history_path}: {e}") from e


# =============================================================================
# Postgres
# =============================================================================

def get_db_connection():
    """Get connection to the bandcoach database."""
    load_dotenv()
    try:
        return psycopg2.connect(
            host=os.getenv('POSTGRES_HOST', 'localhost'),
            port=os.getenv('POSTGRES_PORT', '5432'),
            database=os.getenv('POSTGRES_DB', 'bandcoach'),
            user=os.getenv('POSTGRES_USER', 'postgres'),
            password=os.getenv('POSTGRES_PASSWORD', '')
        )
    except psycopg2.Error as e:
        raise StorageError(f"Could not connect to Postgres: {e}") from e


SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS athlete_blobs (
        key TEXT PRIMARY KEY,
        payload JSONB NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE TABLE IF NOT EXISTS athlete_history (
        id SERIAL PRIMARY KEY,
        key TEXT NOT NULL,
        recorded_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        payload JSONB NOT NULL
    );
"""


def _as_dict(payload) -> Optional[Dict[str, Any]]:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            return None
    return payload if isinstance(payload, dict) else None


class PostgresStore(StateStore):
    """
    JSONB-backed store.

    Args:
        conn: Open psycopg2 connection (see get_db_connection)
        key: Athlete key
        ensure_schema: Create the tables if they do not exist
    """

    def __init__(self, conn, key: str = ATHLETE_KEY, ensure_schema: bool = True):
        self.conn = conn
        self.key = key
        if ensure_schema:
            self._execute(SCHEMA_SQL, ())

    def _execute(self, query: str, params: tuple, fetch: Optional[str] = None):
        try:
            with self.conn.cursor() as cur:
                cur.execute(query, params)
                if fetch == "one":
                    rows = cur.fetchone()
                elif fetch == "all":
                    rows = cur.fetchall()
                else:
                    rows = None
            if fetch is None:
                self.conn.commit()
            return rows
        except psycopg2.Error as e:
            self.conn.rollback()
            raise StorageError(f"Postgres error: {e}") from e

    def load_state(self) -> Optional[Dict[str, Any]]:
        row = self._execute(
            "SELECT payload FROM athlete_blobs WHERE key = %s",
            (self.key,),
            fetch="one",
        )
        return _as_dict(row[0]) if row else None

    def save_state(self, state: Dict[str, Any]) -> None:
        self._execute(
            """
            INSERT INTO athlete_blobs (key, payload, updated_at)
            VALUES (%s, %s, now())
            ON CONFLICT (key) DO UPDATE
            SET payload = EXCLUDED.payload, updated_at = now()
            """,
            (self.key, Json(state)),
        )

    def load_history(self) -> List[Dict[str, Any]]:
        rows = self._execute(
            "SELECT payload FROM athlete_history WHERE key = %s ORDER BY recorded_at, id",
            (self.key,),
            fetch="all",
        )
        return [d for d in (_as_dict(r[0]) for r in rows or []) if d is not None]

    def append_history(self, record: Dict[str, Any]) -> None:
        self._execute(
            "INSERT INTO athlete_history (key, payload) VALUES (%s, %s)",
            (self.key, Json(record)),
        )


# =============================================================================
# Factory
# =============================================================================

def get_store(kind: Optional[str] = None) -> StateStore:
    """
    Build the configured store.

    Args:
        kind: 'json' or 'postgres'. Defaults to $BANDCOACH_STORE, then 'json'.

    Returns:
        StateStore
    """
    load_dotenv()
    kind = (kind or os.getenv("BANDCOACH_STORE", "json")).lower()

    if kind == "postgres":
        return PostgresStore(get_db_connection())
    if kind == "json":
        directory = os.getenv("BANDCOACH_DATA_DIR", str(DEFAULT_DATA_DIR))
        return JsonFileStore(directory)
    raise StorageError(f"Unknown store kind: {kind!r} (expected 'json' or 'postgres')")
