"""
PostgreSQL Task Store - durable workflow task persistence.

Each task is one row in workflow_tasks: the queryable columns (robot, status,
step, timestamps) are kept alongside the full camelCase record in a JSONB
payload, which is the source of truth when reading a task back.

Connection parameters come from utils.database_config (DATABASE_URL or
FLEET_DB_* environment variables, then explicit fallbacks).
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from dataclasses import replace
from typing import Optional, List, Dict, Any

import psycopg2
import psycopg2.errors
import psycopg2.pool
from psycopg2.extras import RealDictCursor, Json

from interfaces.configuration_interface import DatabaseConfig
from interfaces.task_store_interface import ITaskStore, TaskStoreError, TaskNotFoundError
from interfaces.task_workflow_interface import Task, TaskStatus
from fleet.impl.task_store_memory_impl import new_task_id
from utils.database_config import get_database_config, DatabaseConfigError


logger = logging.getLogger(__name__)


CREATE_TASKS_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS workflow_tasks (
        task_id VARCHAR(128) PRIMARY KEY,
        robot_id VARCHAR(128) NOT NULL,
        status VARCHAR(32) NOT NULL,
        current_step VARCHAR(32) NOT NULL,
        payload JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    CREATE INDEX IF NOT EXISTS idx_workflow_tasks_status ON workflow_tasks (status);
"""

TERMINAL_STATUSES = tuple(s.value for s in TaskStatus if s.is_terminal)


class PostgresTaskStore(ITaskStore):
    """
    ITaskStore backed by PostgreSQL through a psycopg2 ThreadedConnectionPool.

    Thread-safe: each operation checks a connection out of the pool and runs
    in its own transaction.
    """

    def __init__(self,
                 db_config: Optional[DatabaseConfig] = None,
                 db_params: Optional[Dict[str, Any]] = None,
                 pool_size: int = 5,
                 create_schema: bool = True):
        """
        Args:
            db_config: Typed database section used as fallback connection parameters
            db_params: Explicit psycopg2 connection kwargs; skips environment lookup
            pool_size: Maximum pooled connections
            create_schema: Create workflow_tasks when missing
        """
        if db_params is None:
            try:
                db_params = get_database_config(section=db_config)
            except DatabaseConfigError as e:
                raise TaskStoreError(str(e))

        self.db_params = {
            **db_params,
            'cursor_factory': RealDictCursor,
            'connect_timeout': db_config.connect_timeout if db_config else 10,
            'application_name': db_config.application_name if db_config else 'fleet_workflow',
        }
        self.pool_size = max(1, db_config.pool_size if db_config else pool_size)

        self._pool_lock = threading.Lock()
        self._connection_pool = None
        self._initialize_database(create_schema)

    def _initialize_database(self, create_schema: bool) -> None:
        try:
            with self._pool_lock:
                self._connection_pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=self.pool_size,
                    **self.db_params
                )
        except psycopg2.Error as e:
            raise TaskStoreError(f"Failed to connect to task database: {e}")

        if create_schema:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(CREATE_TASKS_TABLE_SQL)
                conn.commit()
        logger.info(f"PostgresTaskStore ready on {self.db_params.get('host')}/{self.db_params.get('database')}")

    @contextmanager
    def _get_connection(self):
        """Get database connection from pool with proper cleanup."""
        conn = None
        try:
            with self._pool_lock:
                if self._connection_pool is None:
                    raise TaskStoreError("Database connection pool not initialized")
                conn = self._connection_pool.getconn()

            if conn.closed:
                with self._pool_lock:
                    self._connection_pool.putconn(conn, close=True)
                    conn = self._connection_pool.getconn()

            yield conn

        except TaskStoreError:
            if conn and not conn.closed:
                conn.rollback()
            raise
        except psycopg2.Error as e:
            if conn and not conn.closed:
                conn.rollback()
            raise TaskStoreError(f"Database operation failed: {e}")
        finally:
            if conn:
                with self._pool_lock:
                    if self._connection_pool:
                        self._connection_pool.putconn(conn)

    def connection(self):
        """Pooled connection context manager, shared with the KPI recorder."""
        return self._get_connection()

    # --- ITaskStore ---

    def create(self, task: Task) -> Task:
        stored = replace(
            task,
            task_id=task.task_id or new_task_id(),
            created_at=task.created_at or datetime.now(timezone.utc),
        )
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                try:
                    cur.execute(
                        """
                        INSERT INTO workflow_tasks (task_id, robot_id, status, current_step, payload, created_at)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        """,
                        (stored.task_id, stored.robot_id, stored.status.value,
                         stored.current_step.value, Json(stored.to_dict()), stored.created_at)
                    )
                except psycopg2.errors.UniqueViolation:
                    conn.rollback()
                    raise TaskStoreError(f"Task already exists: {stored.task_id}")
            conn.commit()
        logger.debug(f"Inserted task {stored.task_id}")
        return stored

    def get(self, task_id: str) -> Optional[Task]:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT payload FROM workflow_tasks WHERE task_id = %s", (task_id,))
                row = cur.fetchone()
        return Task.from_dict(row['payload']) if row else None

    def replace(self, task: Task) -> Task:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE workflow_tasks
                    SET robot_id = %s, status = %s, current_step = %s, payload = %s, updated_at = NOW()
                    WHERE task_id = %s
                    """,
                    (task.robot_id, task.status.value, task.current_step.value,
                     Json(task.to_dict()), task.task_id)
                )
                if cur.rowcount == 0:
                    conn.rollback()
                    raise TaskNotFoundError(task.task_id)
            conn.commit()
        return task

    def list_active(self) -> List[Task]:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT payload FROM workflow_tasks
                    WHERE status NOT IN %s
                    ORDER BY created_at
                    """,
                    (TERMINAL_STATUSES,)
                )
                rows = cur.fetchall()
        return [Task.from_dict(row['payload']) for row in rows]

    def close(self) -> None:
        """Close all pooled connections."""
        with self._pool_lock:
            if self._connection_pool:
                self._connection_pool.closeall()
                self._connection_pool = None
        logger.info("PostgresTaskStore database connections closed")
