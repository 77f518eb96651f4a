"""
Periodic task loop used by signature housekeeping.
Tasks are registered with an interval and run cooperatively from a single loop.
"""

import time
import threading
from typing import Callable, Dict

from .config import is_housekeeping_enabled
from util.logging import logger


tasks: Dict[str, Dict] = {}  # task_name -> {func, interval, last_run}
running = False
shutdown_event = None


def register_task(name: str, interval_sec: int, func: Callable):
    """
    Register a task to be executed periodically.

    Args:
        name: Unique task identifier
        interval_sec: How often to run this task in seconds
        func: Function to call (should be fast and not block)
    """
    if not callable(func):
        raise ValueError(f"Task function must be callable: {func}")

    if interval_sec < 1:
        raise ValueError(f"Interval must be >= 1 second: {interval_sec}")

    tasks[name] = {
        "func": func,
        "interval": interval_sec,
        "last_run": None
    }

    logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s)")


def unregister_task(name: str):
    """Remove a task from the registry."""
    if name in tasks:
        del tasks[name]
        logger.info(f"Unregistered heartbeat task '{name}'")


def list_tasks():
    """Return list of registered task names."""
    return list(tasks.keys())


def start():
    """
    Start the heartbeat loop.

    Blocks until stop() is called, the process is interrupted, or a single
    cycle exceeds its time budget.
    """
    global running, shutdown_event

    if not is_housekeeping_enabled():
        logger.info("Housekeeping disabled (HOUSEKEEPING_ENABLED=false). Skipping start.")
        return

    if running:
        raise RuntimeError("Heartbeat already running")

    running = True
    shutdown_event = threading.Event()

    logger.info(f"Starting heartbeat loop with tasks: {list(tasks.keys())}")

    try:
        while running and not shutdown_event.is_set():
            start_time = time.monotonic()

            for name, task_info in list(tasks.items()):
                if should_run_task(name, task_info):
                    try:
                        run_task(name, task_info)
                    except Exception as e:
                        # Error isolation - one failing task must not stop the others
                        logger.error(f"Heartbeat task '{name}' failed: {e}")

            shutdown_event.wait(1.0)

            elapsed = time.monotonic() - start_time
            if elapsed > 600.0:
                logger.warning(f"Heartbeat cycle too slow ({elapsed:.1f}s). Exiting.")
                break

    except KeyboardInterrupt:
        logger.info("Heartbeat interrupted by user")
    finally:
        running = False
        logger.info("Heartbeat loop stopped")


def stop():
    """Stop the heartbeat loop gracefully."""
    global running

    if not running:
        logger.info("Heartbeat not running")
        return

    running = False

    if shutdown_event:
        shutdown_event.set()


def should_run_task(name: str, task_info: Dict) -> bool:
    """Check if a task should run this cycle."""
    if task_info["last_run"] is None:
        return True  # Run immediately if never run

    elapsed = time.monotonic() - task_info["last_run"]
    return elapsed >= task_info["interval"]


def run_task(name: str, task_info: Dict):
    """Execute a task and record timing."""
    start_time = time.monotonic()

    try:
        task_info["func"]()
    except Exception as e:
        duration = time.monotonic() - start_time
        # Failed tasks still wait a full interval before the next attempt
        task_info["last_run"] = time.monotonic()
        raise RuntimeError(f"Task '{name}' failed after {duration:.2f}s: {e}")

    end_time = time.monotonic()
    task_info["last_run"] = end_time
    logger.debug(f"Heartbeat task '{name}' completed in {end_time - start_time:.2f}s")


def get_status():
    """Return current heartbeat status for monitoring."""
    if not is_housekeeping_enabled():
        return {"status": "disabled", "reason": "HOUSEKEEPING_ENABLED=false"}

    return {
        "status": "running" if running else "stopped",
        "tasks": {
            name: {
                "interval_sec": info["interval"],
                "last_run": info["last_run"],
                "next_run": info["last_run"] + info["interval"] if info["last_run"] else None
            }
            for name, info in tasks.items()
        }
    }
