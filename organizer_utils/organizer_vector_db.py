"""
OrganizerVectorDB: a single-file SQLite store for file embeddings and organization history.

The store keeps one embedding per (user, file), serialised with sqlite-vec so that
similarity queries can run inside SQLite. It also acts as the append-only activity
log and as the snapshot store for analysis runs. Methods used by the HTTP layer
return friendly JSON dictionaries; methods used by the clustering engine raise.

Dependencies:
  pip install sqlite-vec fastembed numpy
  # If your Python blocks SQLite extensions (macOS system Python):
  # pip install pysqlite3-binary

Configuration example (save as organizer.config.json):
{
  "db_path": "organizer.sqlite",
  "embedding_model": "nomic-ai/nomic-embed-text-v1.5",
  "search": { "top_k": 10, "score_round": 4 },
  "sqlite": { "wal": true, "synchronous": "NORMAL", "cache_size_mb": 64, "temp_store_memory": true }
}
"""
from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import nullcontext
from datetime import datetime, timedelta, timezone
from functools import wraps
import typing as T

try:  # robust sqlite import
    import sqlite3
    _tmp = sqlite3.connect(":memory:")
    if not hasattr(_tmp, "enable_load_extension"):
        raise ImportError("sqlite3 lacks enable_load_extension; try pysqlite3-binary")
    _tmp.close()
except Exception:  # pragma: no cover
    import pysqlite3 as sqlite3  # type: ignore

import numpy as np
import sqlite_vec
from fastembed import TextEmbedding

from cluster_engine.models import FileCluster, FileEmbeddingRecord, OrganizationActivity

logger = logging.getLogger(__name__)


def _iso_now() -> str:
    return _utc_iso(datetime.now(timezone.utc))


def _utc_iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def _friendly_error(err: Exception) -> dict:
    return {"ok": False, "error": str(err)}


def _safe_json(fn):
    """Decorator: convert exceptions to friendly JSON errors."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        self = args[0] if args else None
        lock = getattr(self, "_lock", None)
        ctx = lock if lock is not None else nullcontext()
        with ctx:
            try:
                return fn(*args, **kwargs)
            except Exception as err:  # pylint: disable=broad-except
                return _friendly_error(err)

    return wrapper


def _locked(fn):
    """Decorator: run under the instance lock and let exceptions propagate."""

    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return fn(self, *args, **kwargs)

    return wrapper


CONFIG_FILE_EXCLUDE_KEYS = {"base_dir", "target_dir"}


DEFAULT_CONFIG = {
    "db_path": "organizer.sqlite",
    "base_dir": ".",
    "target_dir": "",
    # Use a concrete model string; fastembed expects a string, not None
    "embedding_model": "nomic-ai/nomic-embed-text-v1.5",
    "search": {"top_k": 10, "score_round": 4},
    "snippet_chars": 500,
    "history": {"limit": 10, "recent_days": 30},
    "snapshots": {"keep_per_user": 5},
    "log_dir": "logs",
    "sqlite": {
        "wal": True,
        "synchronous": "NORMAL",
        "cache_size_mb": 64,
        "temp_store_memory": True,
    },
}


class OrganizerVectorDB:
    """Embedding store, activity log and analysis snapshot store."""

    def __init__(self, config_path: str = "organizer.config.json"):
        self.config_path = config_path
        self.config = self._load_or_create_config(config_path)
        self._lock = threading.RLock()
        self.conn = self._connect_and_load_vec()
        self._embedder: T.Optional[TextEmbedding] = None
        self._prefix = "passage: "

        self._ensure_schema()
        self._refresh_config_from_db()
        self._write_config_file()

    @_safe_json
    def save_config(self, **overrides) -> dict:
        """Persist configuration overrides.

        Any provided keyword arguments are merged into the in-memory configuration,
        saved to the JSON config file and upserted into the ``config`` table within
        the SQLite database. Paths are stored as absolute paths.
        """

        c = self.conn
        for key, value in overrides.items():
            if value is None:
                continue
            if key in {"base_dir", "target_dir"}:
                value = os.path.abspath(str(value))
            self.config[key] = value
            stored = json.dumps(value) if not isinstance(value, str) else value
            c.execute(
                "INSERT OR REPLACE INTO config(key, value) VALUES(?, ?)",
                (key, stored),
            )
        c.commit()
        self._write_config_file()
        logger.info("Saved config overrides: %s", list(overrides.keys()))
        return {"ok": True, "config_path": self.config_path, "config": self.config}

    @staticmethod
    def _load_or_create_config(path: str) -> dict:
        if not os.path.exists(path):
            to_store = {
                key: value
                for key, value in DEFAULT_CONFIG.items()
                if key not in CONFIG_FILE_EXCLUDE_KEYS
            }
            with open(path, "w", encoding="utf-8") as f:
                json.dump(to_store, f, indent=2)
            logger.info("Created default config at %s", path)
            cfg = json.loads(json.dumps(DEFAULT_CONFIG))
        else:
            with open(path, "r", encoding="utf-8") as f:
                cfg = json.load(f)
            logger.info("Loaded config from %s", path)

        def deep_merge(default: dict, user: dict) -> dict:
            out = dict(default)
            for k, v in user.items():
                if isinstance(v, dict) and isinstance(out.get(k), dict):
                    out[k] = deep_merge(out[k], v)
                else:
                    out[k] = v
            return out

        merged = deep_merge(DEFAULT_CONFIG, cfg)
        db_path = merged.get("db_path", DEFAULT_CONFIG["db_path"])
        if db_path and not os.path.isabs(db_path):
            merged["db_path"] = os.path.abspath(os.path.join(os.path.dirname(path), db_path))
        return merged

    def _connect_and_load_vec(self) -> sqlite3.Connection:
        # Allow use across FastAPI worker threads and avoid “created in a different thread”
        db = sqlite3.connect(self.config["db_path"], check_same_thread=False)
        db.row_factory = sqlite3.Row

        db.execute("PRAGMA busy_timeout=5000")

        s = self.config.get("sqlite", {})
        if s.get("wal", True):
            try:
                db.execute("PRAGMA journal_mode=WAL")
            except sqlite3.OperationalError as exc:  # pragma: no cover - depends on sqlite build
                logger.warning("WAL mode unavailable (%s); falling back to DELETE", exc)
                db.execute("PRAGMA journal_mode=DELETE")
        db.execute(f"PRAGMA synchronous={s.get('synchronous', 'NORMAL')}")
        if s.get("temp_store_memory", True):
            db.execute("PRAGMA temp_store=MEMORY")
        cache_mb = int(s.get("cache_size_mb", 64))
        db.execute(f"PRAGMA cache_size={-cache_mb * 1024}")
        db.execute("PRAGMA foreign_keys=ON")

        db.enable_load_extension(True)
        sqlite_vec.load(db)
        db.enable_load_extension(False)
        return db

    def _ensure_schema(self) -> None:
        c = self.conn
        c.executescript(
            """
            CREATE TABLE IF NOT EXISTS file_embeddings(
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id TEXT NOT NULL,
              file_id TEXT NOT NULL,
              file_name TEXT NOT NULL,
              folder_path TEXT,
              content_snippet TEXT NOT NULL DEFAULT '',
              metadata TEXT NOT NULL DEFAULT '{}',
              embedding BLOB NOT NULL,
              dim INTEGER NOT NULL,
              created_at TEXT NOT NULL,
              updated_at TEXT NOT NULL,
              UNIQUE(user_id, file_id)
            );
            CREATE TABLE IF NOT EXISTS organization_activity(
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id TEXT NOT NULL,
              cluster_name TEXT NOT NULL,
              folder_name TEXT NOT NULL,
              files_moved INTEGER NOT NULL,
              method TEXT NOT NULL,
              confidence REAL NOT NULL,
              metadata TEXT NOT NULL DEFAULT '{}',
              timestamp TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_activity_user_time
              ON organization_activity(user_id, timestamp);
            CREATE TABLE IF NOT EXISTS analysis_snapshots(
              token TEXT PRIMARY KEY,
              user_id TEXT NOT NULL,
              clusters TEXT NOT NULL,
              created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS config(
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            );
            """
        )
        row = c.execute("SELECT value FROM config WHERE key='base_dir'").fetchone()
        if not row:
            c.execute(
                "INSERT INTO config(key, value) VALUES('base_dir', ?)",
                (os.path.abspath(self.config["base_dir"]),),
            )
        target_dir = self.config.get("target_dir")
        if target_dir:
            c.execute(
                "INSERT OR IGNORE INTO config(key, value) VALUES('target_dir', ?)",
                (os.path.abspath(target_dir),),
            )
        c.commit()

    @_safe_json
    def reset_db(self, base_dir_abs: str) -> dict:
        logger.info("Resetting database with base directory %s", base_dir_abs)
        base_dir_abs = os.path.abspath(base_dir_abs)
        c = self.conn
        c.executescript(
            """
            DELETE FROM file_embeddings;
            DELETE FROM organization_activity;
            DELETE FROM analysis_snapshots;
            DELETE FROM config;
            """
        )
        self.config.pop("target_dir", None)
        c.execute(
            "INSERT OR REPLACE INTO config(key, value) VALUES('base_dir', ?)",
            (base_dir_abs,),
        )
        c.commit()
        self.config["base_dir"] = base_dir_abs
        logger.info("Database reset complete; base_dir=%s", self.config["base_dir"])
        return {"ok": True, "message": "database reset", "base_dir": self.config["base_dir"]}

    def _write_config_file(self) -> None:
        """Persist the JSON configuration excluding runtime-only keys."""

        persisted = {
            key: value
            for key, value in self.config.items()
            if key not in CONFIG_FILE_EXCLUDE_KEYS
        }
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(persisted, f, indent=2)

    def _refresh_config_from_db(self) -> None:
        """Load persisted configuration values from SQLite into memory."""

        rows = self.conn.execute("SELECT key, value FROM config").fetchall()
        for row in rows:
            value = row["value"]
            if isinstance(value, (bytes, bytearray)):
                value = value.decode("utf-8")
            try:
                parsed = json.loads(value)
            except (TypeError, json.JSONDecodeError):
                parsed = value
            self.config[row["key"]] = parsed

    @_safe_json
    def get_base_dir(self) -> dict:
        row = self.conn.execute("SELECT value FROM config WHERE key='base_dir'").fetchone()
        if not row:
            raise RuntimeError("Base directory not set. Call reset_db(base_dir_abs).")
        return {"ok": True, "base_dir": row["value"]}

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    @property
    def embedder(self) -> TextEmbedding:
        if self._embedder is None:
            model_name = self.config.get("embedding_model") or DEFAULT_CONFIG["embedding_model"]
            self._embedder = TextEmbedding(model_name=model_name)
        return self._embedder

    def _embed_doc(self, text: str) -> np.ndarray:
        # embed() yields a generator of vectors; take the first and return float32 ndarray
        vec_iter = self.embedder.embed([self._prefix + text])
        vec = next(iter(vec_iter))
        return np.asarray(vec, dtype=np.float32)

    def _upsert(self, user_id: str, record: FileEmbeddingRecord) -> int:
        if not record.embedding:
            raise ValueError(f"embedding is empty for: {record.file_id}")
        now = _iso_now()
        blob = sqlite_vec.serialize_float32(list(record.embedding))
        self.conn.execute(
            """
            INSERT INTO file_embeddings(
              user_id, file_id, file_name, folder_path, content_snippet, metadata,
              embedding, dim, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, file_id) DO UPDATE SET
              file_name=excluded.file_name,
              folder_path=excluded.folder_path,
              content_snippet=excluded.content_snippet,
              metadata=excluded.metadata,
              embedding=excluded.embedding,
              dim=excluded.dim,
              updated_at=excluded.updated_at
            """,
            (
                user_id,
                record.file_id,
                record.file_name,
                record.folder_path,
                record.content_snippet,
                json.dumps(record.metadata),
                blob,
                len(record.embedding),
                now,
                now,
            ),
        )
        self.conn.commit()
        row = self.conn.execute(
            "SELECT id FROM file_embeddings WHERE user_id=? AND file_id=?",
            (user_id, record.file_id),
        ).fetchone()
        return int(row["id"])

    @_safe_json
    def upsert_embedding(self, user_id: str, record: FileEmbeddingRecord) -> dict:
        """Store a precomputed embedding for ``record.file_id``."""
        row_id = self._upsert(user_id, record)
        logger.info("Stored embedding for %s (user=%s, dim=%s)", record.file_id, user_id, len(record.embedding))
        return {"ok": True, "id": row_id, "file_id": record.file_id, "dim": len(record.embedding)}

    @_safe_json
    def index_text(
        self,
        user_id: str,
        file_id: str,
        file_name: str,
        text: str,
        folder_path: T.Optional[str] = None,
        metadata: T.Optional[dict] = None,
    ) -> dict:
        """Embed ``text`` with the configured FastEmbed model and store it."""
        if not text or not text.strip():
            raise ValueError("text to index is empty.")
        emb = self._embed_doc(text)
        record = FileEmbeddingRecord(
            file_id=file_id,
            file_name=file_name,
            embedding=tuple(float(x) for x in emb),
            content_snippet=text[: int(self.config.get("snippet_chars", 500))],
            folder_path=folder_path,
            metadata=metadata or {},
        )
        row_id = self._upsert(user_id, record)
        logger.info("Indexed text for %s (user=%s)", file_id, user_id)
        return {"ok": True, "id": row_id, "file_id": file_id, "dim": len(record.embedding)}

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> FileEmbeddingRecord:
        vector = np.frombuffer(row["embedding"], dtype=np.float32)
        try:
            metadata = json.loads(row["metadata"] or "{}")
        except json.JSONDecodeError:
            metadata = {}
        return FileEmbeddingRecord(
            file_id=row["file_id"],
            file_name=row["file_name"],
            embedding=tuple(float(x) for x in vector),
            content_snippet=row["content_snippet"] or "",
            folder_path=row["folder_path"],
            metadata=metadata,
        )

    @_locked
    def get_file_records(self, user_id: str) -> T.List[FileEmbeddingRecord]:
        """Return every embedded file for ``user_id`` in insertion order."""
        rows = self.conn.execute(
            "SELECT * FROM file_embeddings WHERE user_id=? ORDER BY id ASC",
            (user_id,),
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    @_locked
    def count_files(self, user_id: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS c FROM file_embeddings WHERE user_id=?",
            (user_id,),
        ).fetchone()
        return int(row["c"])

    @_safe_json
    def find_similar_files(self, user_id: str, file_id: str, top_k: int | None = None) -> dict:
        row = self.conn.execute(
            "SELECT embedding, dim FROM file_embeddings WHERE user_id=? AND file_id=?",
            (user_id, file_id),
        ).fetchone()
        if not row:
            raise KeyError(f"file not found: {file_id}")
        k = int(top_k or self.config.get("search", {}).get("top_k", 10))
        score_round = int(self.config.get("search", {}).get("score_round", 4))
        sql = """
        SELECT file_id, file_name, folder_path,
               vec_distance_cosine(embedding, :q) AS distance
        FROM file_embeddings
        WHERE user_id = :u AND file_id <> :f AND dim = :dim
        ORDER BY distance
        LIMIT :k
        """
        matches = self.conn.execute(
            sql,
            {"q": row["embedding"], "u": user_id, "f": file_id, "dim": row["dim"], "k": k},
        ).fetchall()
        results = []
        for m in matches:
            d = float(m["distance"]) if m["distance"] is not None else 2.0
            sim = max(0.0, min(1.0, 1.0 - (d / 2.0)))
            results.append({
                "file_id": m["file_id"],
                "file_name": m["file_name"],
                "folder_path": m["folder_path"],
                "similarity_score": round(sim, score_round),
                "distance": round(d, score_round),
            })
        return {"ok": True, "results": results}

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    @_locked
    def append_activity(self, activity: OrganizationActivity) -> None:
        self.conn.execute(
            """
            INSERT INTO organization_activity(
              user_id, cluster_name, folder_name, files_moved, method, confidence, metadata, timestamp
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                activity.user_id,
                activity.cluster_name,
                activity.folder_name,
                activity.files_moved,
                activity.method,
                activity.confidence,
                json.dumps(activity.metadata, default=str),
                _utc_iso(activity.timestamp),
            ),
        )
        self.conn.commit()
        logger.info(
            "Recorded activity for %s: %s files into %r",
            activity.user_id,
            activity.files_moved,
            activity.folder_name,
        )

    @_locked
    def get_activity_history(self, user_id: str, limit: int | None = None) -> T.List[OrganizationActivity]:
        limit = int(limit or self.config.get("history", {}).get("limit", 10))
        rows = self.conn.execute(
            """
            SELECT * FROM organization_activity
            WHERE user_id=?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (user_id, limit),
        ).fetchall()
        return [
            OrganizationActivity(
                user_id=r["user_id"],
                cluster_name=r["cluster_name"],
                folder_name=r["folder_name"],
                files_moved=int(r["files_moved"]),
                method=r["method"],
                confidence=float(r["confidence"]),
                metadata=json.loads(r["metadata"] or "{}"),
                timestamp=datetime.fromisoformat(r["timestamp"]),
            )
            for r in rows
        ]

    @_locked
    def get_activity_stats(self, user_id: str, recent_days: int | None = None) -> dict:
        """Totals across all activity plus a per-method breakdown of recent activity."""
        days = int(recent_days or self.config.get("history", {}).get("recent_days", 30))
        totals = self.conn.execute(
            """
            SELECT IFNULL(SUM(files_moved), 0) AS files, COUNT(id) AS runs
            FROM organization_activity WHERE user_id=?
            """,
            (user_id,),
        ).fetchone()
        cutoff = _utc_iso(datetime.now(timezone.utc) - timedelta(days=days))
        recent = self.conn.execute(
            """
            SELECT method, IFNULL(SUM(files_moved), 0) AS files, COUNT(id) AS runs
            FROM organization_activity
            WHERE user_id=? AND timestamp >= ?
            GROUP BY method
            ORDER BY method
            """,
            (user_id, cutoff),
        ).fetchall()
        return {
            "total_files_organized": int(totals["files"]),
            "total_organizations": int(totals["runs"]),
            "recent_activities": [
                {
                    "method": r["method"],
                    "files_organized": int(r["files"]),
                    "organization_count": int(r["runs"]),
                }
                for r in recent
            ],
        }

    # ------------------------------------------------------------------
    # Analysis snapshots
    # ------------------------------------------------------------------

    @_locked
    def save_analysis(self, user_id: str, token: str, clusters: T.Sequence[FileCluster]) -> None:
        payload = json.dumps([c.model_dump(mode="json") for c in clusters])
        self.conn.execute(
            "INSERT OR REPLACE INTO analysis_snapshots(token, user_id, clusters, created_at) VALUES (?, ?, ?, ?)",
            (token, user_id, payload, _iso_now()),
        )
        keep = max(1, int(self.config.get("snapshots", {}).get("keep_per_user", 5)))
        pruned = self.conn.execute(
            """
            DELETE FROM analysis_snapshots
            WHERE user_id=? AND token NOT IN (
              SELECT token FROM analysis_snapshots
              WHERE user_id=?
              ORDER BY created_at DESC, rowid DESC
              LIMIT ?
            )
            """,
            (user_id, user_id, keep),
        ).rowcount
        self.conn.commit()
        logger.info(
            "Stored analysis %s for %s (%s clusters, %s pruned)", token, user_id, len(clusters), pruned
        )

    @_locked
    def load_analysis(self, user_id: str, token: str) -> T.Optional[T.List[FileCluster]]:
        row = self.conn.execute(
            "SELECT clusters FROM analysis_snapshots WHERE token=? AND user_id=?",
            (token, user_id),
        ).fetchone()
        if not row:
            return None
        return [FileCluster.model_validate(c) for c in json.loads(row["clusters"])]

    @_locked
    def delete_analysis(self, user_id: str, token: str) -> None:
        self.conn.execute(
            "DELETE FROM analysis_snapshots WHERE token=? AND user_id=?",
            (token, user_id),
        )
        self.conn.commit()
        logger.info("Consumed analysis %s for %s", token, user_id)


__all__ = ["OrganizerVectorDB", "DEFAULT_CONFIG"]
