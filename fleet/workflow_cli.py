#!/usr/bin/env python3
"""
Dropoff Workflow CLI

Administrative commands for the dropoff workflow:
- classify: group map points into dropoff/pickup/shelf/charger roles
- dropoff: create a dropoff task (optionally drive it to completion)
- run: drive all active tasks until none can make progress
- show: print one task
- list: list active tasks
- cancel / pause / resume: change a task's status

Points come from the robot's current map unless --points names a JSON file
with a list of {poiId, name, type, x, y, yaw, areaId} records.

Usage examples:
  python -m fleet.workflow_cli classify --points points.json
  python -m fleet.workflow_cli dropoff --robot-id R1 --dropoff 001_load --shelf 115_load --return CHG1 --run
  python -m fleet.workflow_cli --store postgres run --timeout 600
  python -m fleet.workflow_cli --store postgres cancel --task-id dropoff-1234
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from config.configuration_provider import ConfigurationProvider
from interfaces.configuration_interface import ConfigurationError, SystemConfig
from interfaces.task_store_interface import ITaskStore, TaskNotFoundError
from interfaces.task_workflow_interface import Task, TaskStatus, Waypoint, WorkflowError, waypoints_from_dicts
from kpi.kpi_recorder_interface import IKpiRecorder, LoggingKpiRecorder
from kpi.kpi_recorder_db_impl import KpiRecorderDbImpl
from robot.impl.http_motion_client_impl import HttpRobotMotionClient
from workflow.point_classifier import select
from workflow.impl.workflow_engine_impl import WorkflowEngine
from fleet.impl.task_store_memory_impl import InMemoryTaskStore
from fleet.impl.task_store_postgres_impl import PostgresTaskStore
from fleet.impl.workflow_driver_impl import WorkflowDriver


def configure_logging(system_config: SystemConfig) -> None:
    handlers = [logging.StreamHandler()]
    if system_config.log_file:
        handlers.append(logging.FileHandler(system_config.log_file))
    logging.basicConfig(
        level=getattr(logging, system_config.log_level.upper(), logging.INFO),
        format=system_config.log_format,
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="workflow", description="Dropoff Workflow Administration")
    parser.add_argument("--config", help="YAML or JSON configuration file")
    parser.add_argument("--store", choices=["memory", "postgres"], default="memory",
                        help="Task store backend (default: memory)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_classify = sub.add_parser("classify", help="Classify map points by role")
    p_classify.add_argument("--points", help="JSON file with map points (default: robot's current map)")

    p_dropoff = sub.add_parser("dropoff", help="Create a dropoff task")
    p_dropoff.add_argument("--robot-id", required=True, help="Robot ID")
    p_dropoff.add_argument("--dropoff", required=True, help="Dropoff point poiId")
    p_dropoff.add_argument("--shelf", required=True, help="Shelf point poiId")
    p_dropoff.add_argument("--return", dest="return_point", required=True, help="Return/charger point poiId")
    p_dropoff.add_argument("--priority", default="normal", help="Task priority (default: normal)")
    p_dropoff.add_argument("--points", help="JSON file with map points (default: robot's current map)")
    p_dropoff.add_argument("--run", action="store_true", help="Drive the task until it finishes")
    p_dropoff.add_argument("--timeout", type=float, help="Give up driving after this many seconds")

    p_run = sub.add_parser("run", help="Drive active tasks until none can make progress")
    p_run.add_argument("--timeout", type=float, help="Give up after this many seconds")

    for name, help_text in (("show", "Show a task"), ("cancel", "Cancel a task"),
                            ("pause", "Pause a task"), ("resume", "Resume a paused task")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--task-id", required=True, help="Task ID")

    sub.add_parser("list", help="List active tasks")
    return parser


def load_points(path: Optional[str], motion_client: HttpRobotMotionClient) -> List[Waypoint]:
    if not path:
        return motion_client.get_map_points()
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("points", [])
    return waypoints_from_dicts(data)


def build_store(kind: str, provider: ConfigurationProvider) -> ITaskStore:
    if kind == "postgres":
        return PostgresTaskStore(db_config=provider.get_database_config())
    return InMemoryTaskStore()


def build_kpi_recorder(system_config: SystemConfig, store: ITaskStore) -> IKpiRecorder:
    if system_config.kpi_backend == "database" and isinstance(store, PostgresTaskStore):
        return KpiRecorderDbImpl(store.connection)
    if system_config.kpi_backend == "database":
        logging.warning("KPI database backend needs the postgres store; logging events instead")
    return LoggingKpiRecorder()


def describe(task: Task) -> str:
    line = f"{task.task_id} robot={task.robot_id} status={task.status.value} step={task.current_step.value}"
    if task.current_move_task_id:
        line += f" move={task.current_move_task_id}"
    if task.error_details:
        line += f" error=\"{task.error_details.message}\" code={task.error_details.code}"
    return line


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        provider = ConfigurationProvider(config_file=args.config)
    except ConfigurationError as e:
        print(f"[ERROR] {e}")
        return 1
    system_config = provider.get_system_config()
    configure_logging(system_config)
    if provider.errors:
        for error in provider.errors:
            print(f"[ERROR] Invalid configuration: {error}")
        return 1

    motion_client = HttpRobotMotionClient.from_config(provider.get_robot_api_config())
    store = None
    kpi_recorder = None
    try:
        if args.command == "classify":
            points = load_points(args.points, motion_client)
            groups = WorkflowEngine.create(motion_client, InMemoryTaskStore()).classify(points)
            print(f"[INFO] Classified {len(points)} points:")
            for role in ("dropoff", "pickup", "shelf", "charger"):
                members = getattr(groups, role)
                print(f"  {role}: {', '.join(p.poi_id for p in members) or '-'}")
            return 0

        store = build_store(args.store, provider)
        kpi_recorder = build_kpi_recorder(system_config, store)
        engine = WorkflowEngine.create(motion_client, store, provider, kpi_recorder)

        if args.command == "dropoff":
            points = load_points(args.points, motion_client)
            try:
                dropoff = select(points, args.dropoff)
                shelf = select(points, args.shelf)
                return_point = select(points, args.return_point)
            except KeyError as e:
                print(f"[ERROR] Unknown point: {e.args[0]}")
                return 1
            task = engine.generate(args.robot_id, dropoff, shelf, return_point,
                                   {"priority": args.priority, "origin": "cli"})
            print(f"[SUCCESS] Created task: {describe(task)}")
            if not args.run:
                return 0
            WorkflowDriver(engine, store, provider).run_until_idle(timeout=args.timeout)
            task = store.get(task.task_id)
            print(f"[INFO] {describe(task)}")
            return 0 if task.status == TaskStatus.COMPLETED else 1
        elif args.command == "run":
            remaining = WorkflowDriver(engine, store, provider).run_until_idle(timeout=args.timeout)
            if remaining:
                print(f"[INFO] {len(remaining)} tasks still active:")
                for task in remaining:
                    print(f"  - {describe(task)}")
            else:
                print("[SUCCESS] No active tasks left")
            return 0
        elif args.command == "show":
            task = store.get(args.task_id)
            if task is None:
                print(f"[WARNING] Task not found: {args.task_id}")
                return 1
            print(json.dumps(task.to_dict(), indent=2))
            return 0
        elif args.command == "list":
            tasks = store.list_active()
            if tasks:
                print(f"[INFO] Found {len(tasks)} active tasks:")
                for task in tasks:
                    print(f"  - {describe(task)}")
            else:
                print("[INFO] No active tasks")
            return 0
        elif args.command in ("cancel", "pause", "resume"):
            operation = getattr(engine, f"{args.command}_by_id")
            try:
                task = operation(args.task_id)
            except TaskNotFoundError:
                print(f"[WARNING] Task not found: {args.task_id}")
                return 1
            print(f"[SUCCESS] {describe(task)}")
            return 0
        else:
            parser.print_help()
            return 1
    except WorkflowError as e:
        print(f"[ERROR] {e}")
        return 1
    except Exception as e:
        logging.error("Workflow CLI failed: %s", e, exc_info=True)
        print(f"[ERROR] {e}")
        return 2
    finally:
        if isinstance(kpi_recorder, KpiRecorderDbImpl):
            kpi_recorder.stop()
        elif kpi_recorder is not None:
            kpi_recorder.flush()
        if isinstance(store, PostgresTaskStore):
            store.close()
        motion_client.close()


if __name__ == "__main__":
    sys.exit(main())
