"""
Debug Log Utility

Provides optional, safe file-based debug logging for engine decisions
(protocol chosen, prior chosen, empty regions, fallback assignments).
Logs are written only when enabled via environment variable; failures are
swallowed so an analysis request never fails because of logging.

Inputs:
    - debug_log(location, message, data) calls from engine code
    - Environment: CLINICAL_ENGINE_DEBUG_LOG (set to 1, true, or yes to enable)
    - Environment: CLINICAL_ENGINE_DEBUG (console messages)

Outputs:
    - When enabled: appends JSON lines to <project_root>/.engine/debug.log
    - When disabled or on error: no side effects

Requirements:
    - Standard library only: pathlib, os, json, time
"""

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

# This file is src/utils/debug_log.py -> parent=utils, parent.parent=src, parent.parent.parent=project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

_TRUTHY = ("1", "true", "yes")


def _env_enabled(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in _TRUTHY


DEBUG_LOG_ENABLED = _env_enabled("CLINICAL_ENGINE_DEBUG_LOG")
ENGINE_DEBUG_ENABLED = _env_enabled("CLINICAL_ENGINE_DEBUG")


def engine_debug(msg: str) -> None:
    """Print engine debug message to console only when CLINICAL_ENGINE_DEBUG is set."""
    if ENGINE_DEBUG_ENABLED:
        print(f"[ENGINE DEBUG] {msg}")


def debug_log(
    location: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    log_path: Optional[Path] = None,
) -> None:
    """
    Append one JSON log line to .engine/debug.log when debug logging is enabled.

    Failures (missing dir, permission, disk full, unserializable data) are
    caught and ignored.

    Args:
        location: Call site identifier (e.g. "hanging_protocol.select_protocol").
        message: Short description of the event.
        data: Context dict; values that are not JSON-serializable are stringified.
        log_path: Optional override of the log file (tests).
    """
    if not DEBUG_LOG_ENABLED and log_path is None:
        return
    try:
        if log_path is None:
            log_dir = _PROJECT_ROOT / ".engine"
            log_dir.mkdir(parents=True, exist_ok=True)
            log_path = log_dir / "debug.log"
        payload = {
            "location": location,
            "message": message,
            "data": data or {},
            "timestamp": int(time.time() * 1000),
        }
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, default=str) + "\n")
    except Exception:
        pass
