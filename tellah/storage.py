"""
Tellah - SQLite Storage Layer

Persists projects, scenarios, generated outputs, ratings, extractions and
metric snapshots to a local SQLite database.

Data flows one way through the tables:

    projects -> scenarios -> outputs -> ratings
    projects -> extractions -> metrics

Database location: ~/.tellah/tellah.db (configurable via TELLAH_DB_PATH)
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".tellah" / "tellah.db"


def get_db_path() -> str:
    path = os.environ.get("TELLAH_DB_PATH", str(DEFAULT_DB_PATH))
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return path


def now() -> str:
    # Fixed width so timestamps compare correctly as strings
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


@contextmanager
def get_connection():
    """Context manager for SQLite connections with WAL mode for concurrent reads."""
    conn = sqlite3.connect(get_db_path())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    """Create tables if they don't exist."""
    with get_connection() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                model_config_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS scenarios (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id INTEGER NOT NULL,
                input_text TEXT NOT NULL,
                "order" INTEGER NOT NULL,
                created_at TEXT NOT NULL,

                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS outputs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                scenario_id INTEGER NOT NULL,
                output_text TEXT NOT NULL DEFAULT '',

                -- model, temperature, system prompt and token usage at generation time
                model_snapshot_json TEXT NOT NULL DEFAULT '{}',

                generated_at TEXT NOT NULL,

                FOREIGN KEY (scenario_id) REFERENCES scenarios(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS ratings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                output_id INTEGER NOT NULL,
                stars INTEGER NOT NULL CHECK (stars BETWEEN 1 AND 5),
                feedback_text TEXT,
                tags_json TEXT,
                created_at TEXT NOT NULL,

                FOREIGN KEY (output_id) REFERENCES outputs(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS extractions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id INTEGER NOT NULL,

                -- Parsed LLM analysis, stored verbatim
                criteria_json TEXT NOT NULL DEFAULT '{}',

                confidence_score REAL DEFAULT 0.0,
                rated_output_count INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,

                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS metrics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id INTEGER NOT NULL,
                extraction_id INTEGER,
                success_rate REAL DEFAULT 0.0,
                criteria_breakdown_json TEXT DEFAULT '{}',
                snapshot_time TEXT NOT NULL,

                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
                FOREIGN KEY (extraction_id) REFERENCES extractions(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_scenarios_project_id ON scenarios(project_id);
            CREATE INDEX IF NOT EXISTS idx_outputs_scenario_id ON outputs(scenario_id);
            CREATE INDEX IF NOT EXISTS idx_ratings_output_id ON ratings(output_id);
            CREATE INDEX IF NOT EXISTS idx_extractions_project_id ON extractions(project_id);
            CREATE INDEX IF NOT EXISTS idx_metrics_project_id ON metrics(project_id);
            CREATE INDEX IF NOT EXISTS idx_metrics_extraction_id ON metrics(extraction_id);
        """)
    logger.info(f"Database initialized at {get_db_path()}")


# ─── Project CRUD ─────────────────────────────────────────────────────────────


def create_project(
    name: str,
    model_config: Dict[str, Any],
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a new project (an AI behavior spec)."""
    created_at = now()

    with get_connection() as conn:
        cursor = conn.execute("""
            INSERT INTO projects (name, description, model_config_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """, (name, description, json.dumps(model_config), created_at, created_at))
        project_id = cursor.lastrowid

    return get_project(project_id)


def get_project(project_id: int) -> Optional[Dict[str, Any]]:
    """Get a single project by ID."""
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
    if not row:
        return None
    return _row_to_dict(row)


def list_projects() -> List[Dict[str, Any]]:
    """List all projects, most recently created first."""
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM projects ORDER BY created_at DESC, id DESC"
        ).fetchall()
    return [_row_to_dict(r) for r in rows]


def update_project(
    project_id: int,
    name: str,
    description: Optional[str],
    model_config: Dict[str, Any],
) -> Optional[Dict[str, Any]]:
    """Replace a project's name, description and model config."""
    with get_connection() as conn:
        cursor = conn.execute("""
            UPDATE projects SET
                name = ?,
                description = ?,
                model_config_json = ?,
                updated_at = ?
            WHERE id = ?
        """, (name, description, json.dumps(model_config), now(), project_id))
    if cursor.rowcount == 0:
        return None
    return get_project(project_id)


def delete_project(project_id: int) -> bool:
    """Delete a project and everything hanging off it."""
    with get_connection() as conn:
        cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
    return cursor.rowcount > 0


# ─── Scenario CRUD ────────────────────────────────────────────────────────────


def create_scenario(project_id: int, input_text: str) -> Dict[str, Any]:
    """Append a scenario to the end of a project's scenario list."""
    with get_connection() as conn:
        row = conn.execute(
            'SELECT MAX("order") AS max_order FROM scenarios WHERE project_id = ?',
            (project_id,),
        ).fetchone()
        next_order = (row["max_order"] or 0) + 1

        cursor = conn.execute("""
            INSERT INTO scenarios (project_id, input_text, "order", created_at)
            VALUES (?, ?, ?, ?)
        """, (project_id, input_text, next_order, now()))
        scenario_id = cursor.lastrowid

    return get_scenario(scenario_id)


def get_scenario(scenario_id: int) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM scenarios WHERE id = ?", (scenario_id,)).fetchone()
    if not row:
        return None
    return dict(row)


def list_scenarios(project_id: int) -> List[Dict[str, Any]]:
    """List a project's scenarios in display order."""
    with get_connection() as conn:
        rows = conn.execute(
            'SELECT * FROM scenarios WHERE project_id = ? ORDER BY "order" ASC, id ASC',
            (project_id,),
        ).fetchall()
    return [dict(r) for r in rows]


def delete_scenario(scenario_id: int) -> bool:
    with get_connection() as conn:
        cursor = conn.execute("DELETE FROM scenarios WHERE id = ?", (scenario_id,))
    return cursor.rowcount > 0


# ─── Output CRUD ──────────────────────────────────────────────────────────────


def create_output(
    scenario_id: int,
    output_text: str,
    model_snapshot: Dict[str, Any],
) -> Dict[str, Any]:
    """Store a generated output verbatim, along with the config that produced it."""
    with get_connection() as conn:
        cursor = conn.execute("""
            INSERT INTO outputs (scenario_id, output_text, model_snapshot_json, generated_at)
            VALUES (?, ?, ?, ?)
        """, (scenario_id, output_text, json.dumps(model_snapshot), now()))
        output_id = cursor.lastrowid

    return get_output(output_id)


def get_output(output_id: int) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM outputs WHERE id = ?", (output_id,)).fetchone()
    if not row:
        return None
    return _row_to_dict(row)


def list_outputs(scenario_id: int) -> List[Dict[str, Any]]:
    """List a scenario's outputs, oldest first."""
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM outputs WHERE scenario_id = ? ORDER BY generated_at ASC, id ASC",
            (scenario_id,),
        ).fetchall()
    return [_row_to_dict(r) for r in rows]


# ─── Rating CRUD ──────────────────────────────────────────────────────────────


def create_rating(
    output_id: int,
    stars: int,
    feedback_text: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Record a star rating (and optional feedback) for an output."""
    tags_json = json.dumps(tags) if tags else None

    with get_connection() as conn:
        cursor = conn.execute("""
            INSERT INTO ratings (output_id, stars, feedback_text, tags_json, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (output_id, stars, feedback_text or None, tags_json, now()))
        rating_id = cursor.lastrowid
        row = conn.execute("SELECT * FROM ratings WHERE id = ?", (rating_id,)).fetchone()

    return _row_to_dict(row)


def list_ratings(output_id: int) -> List[Dict[str, Any]]:
    """List an output's ratings, newest first."""
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM ratings WHERE output_id = ? ORDER BY created_at DESC, id DESC",
            (output_id,),
        ).fetchall()
    return [_row_to_dict(r) for r in rows]


def list_rated_outputs(
    project_id: int,
    since: Optional[str] = None,
    until: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    List a project's rated outputs, each joined with its scenario input and
    its effective (most recent) rating.

    When `since` is given, only outputs whose effective rating was created
    strictly after that timestamp are returned. `until` is an inclusive
    upper bound on the same timestamp.
    """
    query = """
        SELECT
            o.id AS id,
            o.scenario_id AS scenario_id,
            o.output_text AS output_text,
            o.model_snapshot_json AS model_snapshot_json,
            o.generated_at AS generated_at,
            s.input_text AS input_text,
            s."order" AS scenario_order,
            r.id AS rating_id,
            r.stars AS stars,
            r.feedback_text AS feedback_text,
            r.tags_json AS tags_json,
            r.created_at AS rated_at
        FROM outputs o
        JOIN scenarios s ON s.id = o.scenario_id
        JOIN ratings r ON r.id = (
            SELECT r2.id FROM ratings r2
            WHERE r2.output_id = o.id
            ORDER BY r2.created_at DESC, r2.id DESC
            LIMIT 1
        )
        WHERE s.project_id = ?
    """
    params: List[Any] = [project_id]

    if since:
        query += " AND r.created_at > ?"
        params.append(since)

    if until:
        query += " AND r.created_at <= ?"
        params.append(until)

    query += ' ORDER BY s."order" ASC, o.id ASC'

    with get_connection() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_dict(r) for r in rows]


def count_rated_outputs(project_id: int) -> int:
    """Count distinct outputs in a project that have at least one rating."""
    with get_connection() as conn:
        row = conn.execute("""
            SELECT COUNT(DISTINCT r.output_id) AS n
            FROM ratings r
            JOIN outputs o ON o.id = r.output_id
            JOIN scenarios s ON s.id = o.scenario_id
            WHERE s.project_id = ?
        """, (project_id,)).fetchone()
    return row["n"]


# ─── Extraction / Metric Snapshots ────────────────────────────────────────────


def save_snapshot(
    project_id: int,
    criteria: Dict[str, Any],
    confidence_score: float,
    rated_output_count: int,
    success_rate: float,
    criteria_breakdown: Dict[str, Any],
    created_at: Optional[str] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Persist an extraction and its metric in a single transaction.

    `created_at` is the end of the rating window the extraction covered;
    the next incremental window starts there. Defaults to now.
    """
    created_at = created_at or now()

    with get_connection() as conn:
        cursor = conn.execute("""
            INSERT INTO extractions (
                project_id, criteria_json, confidence_score, rated_output_count, created_at
            ) VALUES (?, ?, ?, ?, ?)
        """, (project_id, json.dumps(criteria), confidence_score, rated_output_count, created_at))
        extraction_id = cursor.lastrowid

        cursor = conn.execute("""
            INSERT INTO metrics (
                project_id, extraction_id, success_rate, criteria_breakdown_json, snapshot_time
            ) VALUES (?, ?, ?, ?, ?)
        """, (project_id, extraction_id, success_rate, json.dumps(criteria_breakdown), created_at))
        metric_id = cursor.lastrowid

    return get_extraction(extraction_id), get_metric(metric_id)


def get_extraction(extraction_id: int) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM extractions WHERE id = ?", (extraction_id,)).fetchone()
    if not row:
        return None
    return _row_to_dict(row)


def get_latest_extraction(project_id: int) -> Optional[Dict[str, Any]]:
    """Get the most recent extraction for a project."""
    with get_connection() as conn:
        row = conn.execute("""
            SELECT * FROM extractions
            WHERE project_id = ?
            ORDER BY created_at DESC, id DESC LIMIT 1
        """, (project_id,)).fetchone()
    if not row:
        return None
    return _row_to_dict(row)


def list_extractions(project_id: int) -> List[Dict[str, Any]]:
    """List a project's extractions, newest first, with their metric's success rate."""
    with get_connection() as conn:
        rows = conn.execute("""
            SELECT
                e.id, e.project_id, e.created_at, e.confidence_score, e.rated_output_count,
                (SELECT m.success_rate FROM metrics m
                 WHERE m.extraction_id = e.id
                 ORDER BY m.snapshot_time DESC, m.id DESC LIMIT 1) AS success_rate
            FROM extractions e
            WHERE e.project_id = ?
            ORDER BY e.created_at DESC, e.id DESC
        """, (project_id,)).fetchall()
    return [dict(r) for r in rows]


def get_metric(metric_id: int) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM metrics WHERE id = ?", (metric_id,)).fetchone()
    if not row:
        return None
    return _row_to_dict(row)


def get_latest_metric(project_id: int, extraction_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Get the most recent metric snapshot for a project, or for one extraction."""
    query = "SELECT * FROM metrics WHERE project_id = ?"
    params: List[Any] = [project_id]

    if extraction_id is not None:
        query += " AND extraction_id = ?"
        params.append(extraction_id)

    query += " ORDER BY snapshot_time DESC, id DESC LIMIT 1"

    with get_connection() as conn:
        row = conn.execute(query, params).fetchone()
    if not row:
        return None
    return _row_to_dict(row)


# ─── Helpers ──────────────────────────────────────────────────────────────────


_JSON_COLUMNS = (
    "model_config_json",
    "model_snapshot_json",
    "tags_json",
    "criteria_json",
    "criteria_breakdown_json",
)


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    """Convert a SQLite Row to a dict, decoding *_json columns into their bare names."""
    d = dict(row)
    for key in _JSON_COLUMNS:
        if key not in d:
            continue
        raw = d.pop(key)
        name = key[: -len("_json")]
        if raw is None:
            d[name] = None
            continue
        try:
            d[name] = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            d[name] = raw
    return d
