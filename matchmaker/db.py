from __future__ import annotations

import json
import os
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import parse_qs, unquote, urlparse


ROOT = Path(__file__).resolve().parents[1]
DEFAULT_SQLITE_PATH = ROOT / "data" / "matchmaking.db"
DEFAULT_DATABASE_URL = f"sqlite:///{DEFAULT_SQLITE_PATH}"


class VectorSearchUnsupported(RuntimeError):
    pass


@dataclass
class DbConfig:
    kind: str
    url: str


def _database_url() -> str:
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL).strip()


def _parse_database_url(url: Optional[str] = None) -> DbConfig:
    raw = (url or _database_url()).strip()
    parsed = urlparse(raw)
    scheme = parsed.scheme.lower()

    if scheme in {"", "sqlite"}:
        return DbConfig(kind="sqlite", url=raw)
    if scheme in {"postgres", "postgresql"}:
        return DbConfig(kind="postgres", url=raw)
    if scheme in {"mysql", "mysql+pymysql"}:
        return DbConfig(kind="mysql", url=raw)

    raise ValueError(f"Unsupported DATABASE_URL scheme: {scheme}")


def backend_summary() -> Dict[str, str]:
    cfg = _parse_database_url()
    return {"backend": cfg.kind, "database_url": cfg.url}


def _sqlite_db_path(sqlite_url: str) -> str:
    if sqlite_url.startswith("sqlite:///"):
        path = sqlite_url.replace("sqlite:///", "", 1)
        return str(Path(path))
    return str(DEFAULT_SQLITE_PATH)


def _connect_sqlite(cfg: DbConfig) -> sqlite3.Connection:
    db_path = _sqlite_db_path(cfg.url)
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def _connect_postgres(cfg: DbConfig):
    try:
        import psycopg
    except ModuleNotFoundError as exc:
        raise RuntimeError(
            "PostgreSQL selected but dependency missing. Install psycopg[binary] to use postgres DATABASE_URL."
        ) from exc
    return psycopg.connect(cfg.url, autocommit=True)


def _connect_mysql(cfg: DbConfig):
    try:
        import pymysql
    except ModuleNotFoundError as exc:
        raise RuntimeError(
            "MySQL selected but dependency missing. Install pymysql to use mysql DATABASE_URL."
        ) from exc

    parsed = urlparse(cfg.url)
    params = parse_qs(parsed.query)
    ssl_enabled = params.get("ssl", ["false"])[0].lower() in {"1", "true", "yes"}

    connect_kwargs: Dict[str, Any] = {
        "host": parsed.hostname or "127.0.0.1",
        "port": parsed.port or 3306,
        "user": unquote(parsed.username or ""),
        "password": unquote(parsed.password or ""),
        "database": parsed.path.lstrip("/"),
        "autocommit": True,
        "cursorclass": pymysql.cursors.DictCursor,
    }
    if ssl_enabled:
        connect_kwargs["ssl"] = {"ssl": True}

    return pymysql.connect(**connect_kwargs)


def _connect():
    cfg = _parse_database_url()
    if cfg.kind == "sqlite":
        return cfg.kind, _connect_sqlite(cfg)
    if cfg.kind == "postgres":
        return cfg.kind, _connect_postgres(cfg)
    if cfg.kind == "mysql":
        return cfg.kind, _connect_mysql(cfg)
    raise ValueError(f"Unsupported database backend: {cfg.kind}")


# Statements are written with sqlite "?" placeholders and rewritten for the
# DB-API drivers that use the "format" paramstyle.
def _sql(kind: str, statement: str) -> str:
    return statement if kind == "sqlite" else statement.replace("?", "%s")


def _fetch_all(kind: str, conn, statement: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    if kind == "sqlite":
        return [dict(row) for row in conn.execute(statement, params).fetchall()]

    with conn.cursor() as cur:
        cur.execute(_sql(kind, statement), params)
        rows = cur.fetchall()
        if kind == "postgres":
            cols = [d.name for d in cur.description]
            return [dict(zip(cols, row)) for row in rows]
    return [dict(row) for row in rows]


def _execute(kind: str, conn, statement: str, params: Sequence[Any] = ()) -> int:
    if kind == "sqlite":
        cur = conn.execute(statement, params)
        conn.commit()
        return cur.rowcount

    with conn.cursor() as cur:
        cur.execute(_sql(kind, statement), params)
        return cur.rowcount


def _schema(kind: str) -> List[str]:
    key = "VARCHAR(64)" if kind == "mysql" else "TEXT"
    real = "DOUBLE PRECISION" if kind == "postgres" else "REAL"
    return [
        f"""
        CREATE TABLE IF NOT EXISTS organizations (
            id {key} PRIMARY KEY,
            name TEXT NOT NULL,
            owner_id {key} NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS events (
            id {key} PRIMARY KEY,
            organization_id {key} NOT NULL,
            name TEXT NOT NULL,
            status VARCHAR(32) NOT NULL,
            created_at VARCHAR(64) NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS attendees (
            id {key} PRIMARY KEY,
            event_id {key} NOT NULL,
            email VARCHAR(255) NOT NULL,
            name TEXT,
            phone VARCHAR(64),
            status VARCHAR(32) NOT NULL,
            created_at VARCHAR(64) NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS responses (
            attendee_id {key} PRIMARY KEY,
            answers TEXT NOT NULL,
            embedding TEXT,
            mode VARCHAR(16),
            created_at VARCHAR(64) NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS matches (
            id {key} PRIMARY KEY,
            event_id {key} NOT NULL,
            attendee_a_id {key} NOT NULL,
            attendee_b_id {key} NOT NULL,
            similarity_score {real},
            common_interests TEXT,
            status VARCHAR(32) NOT NULL,
            introduced_at VARCHAR(64),
            created_at VARCHAR(64) NOT NULL
        )
        """,
    ]


SIMILARITY_FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION find_similar_attendees(
    query_embedding vector,
    event_id_param TEXT,
    exclude_attendee_id TEXT,
    match_limit INTEGER
)
RETURNS TABLE (id TEXT, distance DOUBLE PRECISION)
LANGUAGE sql STABLE AS $$
    SELECT a.id, (r.embedding::vector <=> query_embedding)::double precision AS distance
    FROM attendees a
    JOIN responses r ON r.attendee_id = a.id
    WHERE a.event_id = event_id_param
      AND a.status = 'completed'
      AND r.embedding IS NOT NULL
      AND a.id <> exclude_attendee_id
    ORDER BY distance ASC
    LIMIT match_limit
$$
"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode_json(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value)


def _decode_json(value: Any) -> Any:
    if value is None or isinstance(value, (list, dict)):
        return value
    return json.loads(value)


def init_db() -> None:
    kind, conn = _connect()
    try:
        for statement in _schema(kind):
            _execute(kind, conn, statement)
    finally:
        conn.close()


def install_similarity_function() -> None:
    """Create the pgvector nearest-neighbour function used by the native search path."""
    kind, conn = _connect()
    try:
        if kind != "postgres":
            raise VectorSearchUnsupported(f"vector search requires postgres, backend is {kind}")
        _execute(kind, conn, "CREATE EXTENSION IF NOT EXISTS vector")
        _execute(kind, conn, SIMILARITY_FUNCTION_SQL)
    finally:
        conn.close()


def create_organization(org_id: str, name: str, owner_id: str) -> None:
    kind, conn = _connect()
    try:
        _execute(
            kind,
            conn,
            "INSERT INTO organizations (id, name, owner_id) VALUES (?, ?, ?)",
            (org_id, name, owner_id),
        )
    finally:
        conn.close()


def create_event(event_id: str, organization_id: str, name: str, status: str = "active") -> None:
    kind, conn = _connect()
    try:
        _execute(
            kind,
            conn,
            "INSERT INTO events (id, organization_id, name, status, created_at) VALUES (?, ?, ?, ?, ?)",
            (event_id, organization_id, name, status, _utc_now()),
        )
    finally:
        conn.close()


def create_attendee(
    attendee_id: str,
    event_id: str,
    email: str,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    status: str = "imported",
) -> None:
    kind, conn = _connect()
    try:
        _execute(
            kind,
            conn,
            """
            INSERT INTO attendees (id, event_id, email, name, phone, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (attendee_id, event_id, email, name, phone, status, _utc_now()),
        )
    finally:
        conn.close()


def save_response(
    attendee_id: str,
    answers: Dict[str, str],
    embedding: Optional[List[float]],
    mode: Optional[str] = None,
) -> None:
    kind, conn = _connect()
    params = (attendee_id, json.dumps(answers), _encode_json(embedding), mode, _utc_now())
    try:
        if kind == "mysql":
            _execute(
                kind,
                conn,
                """
                INSERT INTO responses (attendee_id, answers, embedding, mode, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON DUPLICATE KEY UPDATE
                    answers = VALUES(answers),
                    embedding = VALUES(embedding),
                    mode = VALUES(mode)
                """,
                params,
            )
            return

        _execute(
            kind,
            conn,
            """
            INSERT INTO responses (attendee_id, answers, embedding, mode, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (attendee_id) DO UPDATE SET
                answers = excluded.answers,
                embedding = excluded.embedding,
                mode = excluded.mode
            """,
            params,
        )
    finally:
        conn.close()


def get_event(event_id: str) -> Optional[Dict[str, Any]]:
    kind, conn = _connect()
    try:
        rows = _fetch_all(
            kind,
            conn,
            """
            SELECT e.id, e.name, e.status, e.organization_id, o.owner_id
            FROM events e
            JOIN organizations o ON o.id = e.organization_id
            WHERE e.id = ?
            """,
            (event_id,),
        )
    finally:
        conn.close()
    return rows[0] if rows else None


def list_eligible_attendees(event_id: str) -> List[Dict[str, Any]]:
    kind, conn = _connect()
    try:
        rows = _fetch_all(
            kind,
            conn,
            """
            SELECT a.id, a.name, a.email, r.answers, r.embedding
            FROM attendees a
            JOIN responses r ON r.attendee_id = a.id
            WHERE a.event_id = ?
              AND a.status = 'completed'
              AND r.embedding IS NOT NULL
            ORDER BY a.created_at, a.id
            """,
            (event_id,),
        )
    finally:
        conn.close()

    for row in rows:
        row["answers"] = _decode_json(row["answers"]) or {}
        row["embedding"] = [float(x) for x in _decode_json(row["embedding"])]
    return rows


def list_match_pairs(event_id: str) -> List[Dict[str, str]]:
    kind, conn = _connect()
    try:
        return _fetch_all(
            kind,
            conn,
            "SELECT attendee_a_id, attendee_b_id FROM matches WHERE event_id = ?",
            (event_id,),
        )
    finally:
        conn.close()


def find_similar_attendees(
    query_embedding: List[float], event_id: str, exclude_attendee_id: str, match_limit: int = 3
) -> List[Dict[str, Any]]:
    kind, conn = _connect()
    try:
        if kind != "postgres":
            raise VectorSearchUnsupported(f"vector search requires postgres, backend is {kind}")
        embedding_literal = "[" + ",".join(str(float(x)) for x in query_embedding) + "]"
        return _fetch_all(
            kind,
            conn,
            "SELECT id, distance FROM find_similar_attendees(?::vector, ?, ?, ?)",
            (embedding_literal, event_id, exclude_attendee_id, match_limit),
        )
    finally:
        conn.close()


_INSERT_MATCH_SQL = """
    INSERT INTO matches (
        id, event_id, attendee_a_id, attendee_b_id,
        similarity_score, common_interests, status, created_at
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


def insert_matches(rows: Iterable[Dict[str, Any]]) -> int:
    """Insert all rows in one transaction and return how many were written."""
    created_at = _utc_now()
    params = [
        (
            uuid.uuid4().hex,
            row["event_id"],
            row["attendee_a_id"],
            row["attendee_b_id"],
            row["similarity_score"],
            row["common_interests"],
            row.get("status", "pending"),
            created_at,
        )
        for row in rows
    ]
    if not params:
        return 0

    kind, conn = _connect()
    try:
        if kind == "sqlite":
            with conn:
                inserted = conn.executemany(_INSERT_MATCH_SQL, params).rowcount
        elif kind == "postgres":
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.executemany(_sql(kind, _INSERT_MATCH_SQL), params)
                    inserted = cur.rowcount
        else:
            conn.begin()
            try:
                with conn.cursor() as cur:
                    cur.executemany(_sql(kind, _INSERT_MATCH_SQL), params)
                    inserted = cur.rowcount
                conn.commit()
            except Exception:
                conn.rollback()
                raise
    finally:
        conn.close()

    # A committed transaction holds every row; some drivers report -1.
    return inserted if inserted is not None and inserted >= 0 else len(params)


def list_matches(event_id: str) -> List[Dict[str, Any]]:
    kind, conn = _connect()
    try:
        return _fetch_all(
            kind,
            conn,
            """
            SELECT m.id, m.event_id, m.attendee_a_id, m.attendee_b_id,
                   a.name AS attendee_a_name, b.name AS attendee_b_name,
                   m.similarity_score, m.common_interests, m.status,
                   m.introduced_at, m.created_at
            FROM matches m
            JOIN attendees a ON a.id = m.attendee_a_id
            JOIN attendees b ON b.id = m.attendee_b_id
            WHERE m.event_id = ?
            ORDER BY m.similarity_score DESC, m.created_at
            """,
            (event_id,),
        )
    finally:
        conn.close()


def mark_matches_introduced(event_id: str, match_ids: Iterable[str], introduced_at: Optional[str] = None) -> int:
    stamp = introduced_at or _utc_now()
    updated = 0
    kind, conn = _connect()
    try:
        for match_id in match_ids:
            # The status guard keeps a concurrent notifier from re-introducing a pair.
            updated += _execute(
                kind,
                conn,
                """
                UPDATE matches
                SET status = 'introduced', introduced_at = ?
                WHERE id = ? AND event_id = ? AND status <> 'introduced'
                """,
                (stamp, match_id, event_id),
            )
    finally:
        conn.close()
    return updated
