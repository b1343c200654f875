"""
Database module for Forest
Document store on SQLite with direct SQL (no ORM)

Documents live in one of two scopes: project scope (owner = project id) and
path scope (owner = "<project id>/<path name>"). Every reader of path-owned
documents goes through load_path_document, which is the only place the
"general" path falls back to project scope.
"""

import sqlite3
import json
import threading
import traceback
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Any, Type, TypeVar, Union
import logging

from pydantic import BaseModel, ValidationError

from backend.errors import ConfigurationMissing, DataIntegrityViolation
from backend.models import ProjectConfig, TaskGraph, LearningHistory, DaySchedule
from utils.config import DB_PATH, DEFAULT_PATH

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PROJECT_SCOPE = "project"
PATH_SCOPE = "path"

CONFIG_KEY = "config"
TASK_GRAPH_KEY = "hta"
HISTORY_KEY = "learning_history"

ModelT = TypeVar("ModelT", bound=BaseModel)

SCHEMA = """
CREATE TABLE IF NOT EXISTS document (
    scope TEXT NOT NULL,
    owner TEXT NOT NULL,
    key TEXT NOT NULL,
    body TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (scope, owner, key)
);

CREATE TABLE IF NOT EXISTS error_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    operation TEXT NOT NULL,
    error TEXT NOT NULL,
    traceback TEXT,
    context_json TEXT
);

CREATE INDEX IF NOT EXISTS idx_document_owner ON document(owner);
CREATE INDEX IF NOT EXISTS idx_error_log_operation ON error_log(operation);
"""


def day_key(date: str) -> str:
    """Document key of the day schedule for an ISO date"""
    return f"day_{date}"


def path_owner(project_id: str, path_name: str) -> str:
    return f"{project_id}/{path_name}"


class DocumentStore:
    """JSON documents keyed by (scope, owner, key), plus an error log"""

    def __init__(self, db_path: Union[str, Path] = DB_PATH):
        self.db_path = Path(db_path)
        self._locks: Dict[tuple, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self.init_database()

    def ensure_db_directory(self):
        """Ensure the database directory exists with proper permissions"""
        db_dir = self.db_path.parent
        db_dir.mkdir(parents=True, exist_ok=True)
        db_dir.chmod(0o700)

    @contextmanager
    def get_db_connection(self):
        """Context manager for database connections"""
        self.ensure_db_directory()
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_database(self):
        """Initialize the database with the schema"""
        with self.get_db_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    # ------------------------------------------------------------------
    # Raw documents
    # ------------------------------------------------------------------

    def load_document(self, project_id: str, key: str, path_name: Optional[str] = None) -> Optional[Dict]:
        """
        Load one document from project scope, or path scope when path_name is given.

        Raises:
            DataIntegrityViolation: If the body is not valid JSON or its embedded
                identifiers belong to another project or path
        """
        scope, owner = self._scope(project_id, path_name)
        with self.get_db_connection() as conn:
            row = conn.execute(
                "SELECT body FROM document WHERE scope = ? AND owner = ? AND key = ?",
                (scope, owner, key)
            ).fetchone()

        if row is None:
            return None

        try:
            data = json.loads(row["body"])
        except json.JSONDecodeError as e:
            raise DataIntegrityViolation(
                f"Document '{key}' of project '{project_id}' is not valid JSON: {e}"
            ) from e
        self._verify(data, project_id, key, path_name)
        return data

    def save_document(self, project_id: str, key: str, data: Dict[str, Any],
                      path_name: Optional[str] = None) -> bool:
        """Save one document in a single transaction; False when the write failed"""
        scope, owner = self._scope(project_id, path_name)
        try:
            body = json.dumps(data)
            with self.get_db_connection() as conn:
                try:
                    conn.execute("""
                        INSERT INTO document (scope, owner, key, body, updated_at)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(scope, owner, key)
                        DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at
                    """, (scope, owner, key, body, datetime.now().isoformat()))
                    conn.commit()
                except sqlite3.Error:
                    conn.rollback()
                    raise
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"[save_document] Failed to save {scope}:{owner}:{key}: {type(e).__name__}: {e}")
            return False

        logger.debug(f"[save_document] Saved {scope}:{owner}:{key}")
        return True

    def load_path_document(self, project_id: str, path_name: str, key: str) -> Optional[Dict]:
        """
        Two-tier lookup for path-owned documents.

        Path scope first; the "general" path alone falls back to project scope,
        where projects created before per-path storage keep their documents.
        """
        data = self.load_document(project_id, key, path_name=path_name)
        if data is None and path_name == DEFAULT_PATH:
            data = self.load_document(project_id, key)
            if data is not None:
                self._verify(data, project_id, key, path_name)
                logger.info(f"[load_path_document] Using project-level '{key}' for path '{path_name}'")
        return data

    def save_path_document(self, project_id: str, path_name: str, key: str, data: Dict[str, Any]) -> bool:
        """All path-owned writes land in path scope"""
        return self.save_document(project_id, key, data, path_name=path_name)

    @contextmanager
    def lock(self, project_id: str, name: str):
        """Re-entrant advisory lock on one named resource of a project"""
        lock_key = (project_id, name)
        with self._locks_guard:
            lock = self._locks.setdefault(lock_key, threading.RLock())
        with lock:
            yield

    def path_lock(self, project_id: str, path_name: str):
        """Serialize load/compute/save cycles on one (project, path)"""
        return self.lock(project_id, path_owner(project_id, path_name))

    def day_lock(self, project_id: str, date: str):
        return self.lock(project_id, day_key(date))

    def log_error(self, operation: str, error: BaseException, context: Optional[Dict] = None):
        """Record a failure with the operation name, message and input context"""
        context = context or {}
        message = str(error)
        logger.error(f"[{operation}] {type(error).__name__}: {message} | context={context}")

        tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        try:
            with self.get_db_connection() as conn:
                conn.execute("""
                    INSERT INTO error_log (operation, error, traceback, context_json)
                    VALUES (?, ?, ?, ?)
                """, (operation, f"{type(error).__name__}: {message}", tb, json.dumps(context, default=str)))
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"[log_error] Could not persist error for {operation}: {e}")

    def get_error_log(self, limit: int = 20) -> list:
        """Most recent error log entries, newest first"""
        with self.get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM error_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Typed documents
    # ------------------------------------------------------------------

    def load_project_config(self, project_id: Optional[str]) -> ProjectConfig:
        """
        Raises:
            ConfigurationMissing: If no project is active or it has no config
        """
        if not project_id:
            raise ConfigurationMissing("No active project. Create or switch to a project first.")
        data = self.load_document(project_id, CONFIG_KEY)
        if data is None:
            raise ConfigurationMissing(f"Project '{project_id}' has no configuration")
        return self._parse(ProjectConfig, data, project_id, CONFIG_KEY)

    def save_project_config(self, config: ProjectConfig) -> bool:
        return self.save_document(config.id, CONFIG_KEY, config.model_dump(mode="json"))

    def load_task_graph(self, project_id: str, path_name: str) -> Optional[TaskGraph]:
        data = self.load_path_document(project_id, path_name, TASK_GRAPH_KEY)
        if data is None:
            return None
        graph = self._parse(TaskGraph, data, project_id, TASK_GRAPH_KEY)
        graph.project_id = project_id
        graph.path_name = path_name
        return graph

    def save_task_graph(self, project_id: str, path_name: str, graph: TaskGraph) -> bool:
        graph.project_id = project_id
        graph.path_name = path_name
        return self.save_path_document(project_id, path_name, TASK_GRAPH_KEY, graph.model_dump(mode="json"))

    def load_learning_history(self, project_id: str, path_name: str) -> LearningHistory:
        """History of a path; an empty history when none was recorded yet"""
        data = self.load_path_document(project_id, path_name, HISTORY_KEY)
        if data is None:
            return LearningHistory(project_id=project_id, path_name=path_name)
        history = self._parse(LearningHistory, data, project_id, HISTORY_KEY)
        history.project_id = project_id
        history.path_name = path_name
        return history

    def save_learning_history(self, project_id: str, path_name: str, history: LearningHistory) -> bool:
        history.project_id = project_id
        history.path_name = path_name
        return self.save_path_document(project_id, path_name, HISTORY_KEY, history.model_dump(mode="json"))

    def load_day_schedule(self, project_id: str, date: str) -> Optional[DaySchedule]:
        """
        Raises:
            DataIntegrityViolation: If the stored schedule is for another date
        """
        key = day_key(date)
        data = self.load_document(project_id, key)
        if data is None:
            return None
        schedule = self._parse(DaySchedule, data, project_id, key)
        if schedule.date != date:
            raise DataIntegrityViolation(
                f"Document '{key}' holds the schedule for {schedule.date}, expected {date}"
            )
        return schedule

    def save_day_schedule(self, project_id: str, schedule: DaySchedule) -> bool:
        schedule.project_id = project_id
        return self.save_document(project_id, day_key(schedule.date), schedule.model_dump(mode="json"))

    # ------------------------------------------------------------------

    @staticmethod
    def _scope(project_id: str, path_name: Optional[str]) -> tuple:
        if path_name is None:
            return PROJECT_SCOPE, project_id
        return PATH_SCOPE, path_owner(project_id, path_name)

    @staticmethod
    def _parse(model: Type[ModelT], data: Dict, project_id: str, key: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise DataIntegrityViolation(
                f"Document '{key}' of project '{project_id}' is malformed: "
                f"{e.error_count()} invalid field(s), first: {e.errors()[0]['msg']}"
            ) from e

    @staticmethod
    def _verify(data: Dict, project_id: str, key: str, path_name: Optional[str]):
        if not isinstance(data, dict):
            raise DataIntegrityViolation(f"Document '{key}' of project '{project_id}' is not an object")

        if key == CONFIG_KEY and data.get("id") not in (None, project_id):
            raise DataIntegrityViolation(
                f"Config document belongs to project '{data.get('id')}', expected '{project_id}'"
            )

        owner_project = data.get("project_id")
        if owner_project is not None and owner_project != project_id:
            raise DataIntegrityViolation(
                f"Document '{key}' belongs to project '{owner_project}', expected '{project_id}'"
            )

        owner_path = data.get("path_name")
        if path_name is not None and owner_path is not None and owner_path != path_name:
            raise DataIntegrityViolation(
                f"Document '{key}' belongs to path '{owner_path}', expected '{path_name}'"
            )
