from __future__ import annotations

import json
import logging
import queue
import threading
import time
from typing import Optional, List

import psycopg2
from psycopg2.extras import Json

from kpi.kpi_recorder_interface import IKpiRecorder, WorkflowEvent


CREATE_EVENTS_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS workflow_events (
        id BIGSERIAL PRIMARY KEY,
        event_type VARCHAR(64) NOT NULL,
        robot_id VARCHAR(128) NOT NULL,
        task_id VARCHAR(128),
        event_data JSONB NOT NULL DEFAULT '{}'::jsonb,
        recorded_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
"""


class KpiRecorderDbImpl(IKpiRecorder):
    """
    Thread-safe, non-blocking recorder that batches inserts to the
    workflow_events table on a background worker.

    Safety rules:
    - Never block the step executor or the cancellation controller.
    - Log every dropped event or persistence failure explicitly.
    - Best-effort delivery; lost events must be logged as warnings.
    """

    def __init__(
        self,
        connection_getter,
        flush_interval_sec: float = 5.0,
        max_batch_size: int = 256,
        queue_capacity: int = 8192,
        create_table: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._get_connection = connection_getter
        self._flush_interval_sec = max(0.1, float(flush_interval_sec))
        self._max_batch_size = max(1, int(max_batch_size))
        self._queue: "queue.Queue[WorkflowEvent]" = queue.Queue(maxsize=max(128, int(queue_capacity)))
        self._logger = logger or logging.getLogger(__name__)

        if create_table:
            self._ensure_table()

        self._stop_event = threading.Event()
        self._worker = threading.Thread(target=self._worker_loop, name="KpiRecorderWorker", daemon=True)
        self._worker.start()

    def record_event(self, event: WorkflowEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._logger.warning(
                f"[KPI] Event queue full, dropping event: type={event.event_type} "
                f"robot={event.robot_id} task={event.task_id}"
            )

    def flush(self) -> None:
        self._drain_and_persist(blocking=True)

    def stop(self) -> None:
        self._stop_event.set()
        self._worker.join(timeout=self._flush_interval_sec * 2)
        try:
            self.flush()
        except Exception:
            self._logger.error("[KPI] Final flush failed during shutdown", exc_info=True)

    # --- Internal ---
    def _ensure_table(self) -> None:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(CREATE_EVENTS_TABLE_SQL)
                conn.commit()
        except Exception:
            self._logger.error("[KPI] Could not create workflow_events table", exc_info=True)

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                # Block for the first event, then sweep whatever else is queued
                try:
                    first = self._queue.get(timeout=self._flush_interval_sec)
                except queue.Empty:
                    continue
                self._queue.task_done()
                batch = [first] + self._drain(blocking=False)
                self._persist_events(batch)
            except Exception:
                # Never let the worker die silently
                self._logger.error("[KPI] Worker loop error", exc_info=True)
                time.sleep(0.1)

    def _drain(self, blocking: bool) -> List[WorkflowEvent]:
        drained: List[WorkflowEvent] = []
        while len(drained) < self._max_batch_size:
            try:
                item = self._queue.get(block=blocking, timeout=0.01 if blocking else None)
            except queue.Empty:
                break
            drained.append(item)
            self._queue.task_done()
        return drained

    def _drain_and_persist(self, blocking: bool) -> None:
        batch = self._drain(blocking)
        while batch:
            self._persist_events(batch)
            batch = self._drain(blocking)

    def _persist_events(self, events: List[WorkflowEvent]) -> None:
        if not events:
            return
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
                    cur.executemany(
                        """
                        INSERT INTO workflow_events (event_type, robot_id, task_id, event_data)
                        VALUES (%s, %s, %s, %s)
                        """,
                        [
                            (e.event_type, e.robot_id, e.task_id, Json(e.event_data, dumps=_dumps))
                            for e in events
                        ],
                    )
                conn.commit()
        except psycopg2.Error:
            # Database-level failure; log and drop this batch
            self._logger.error(
                f"[KPI] Database error while persisting {len(events)} workflow event(s)", exc_info=True
            )
        except Exception:
            # Connection getters may wrap driver errors in their own types
            self._logger.error(
                f"[KPI] Failed to persist {len(events)} workflow event(s)", exc_info=True
            )


def _dumps(value) -> str:
    return json.dumps(value, default=str)
