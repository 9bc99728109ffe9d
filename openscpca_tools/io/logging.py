"""Logging helpers for module scripts and CLI commands.

Every command writes its own log file next to the module's results, and
run settings are recorded as YAML documents or JSON lines so a result can be
traced back to the configuration that produced it.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

PathLike = Union[str, Path]

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def get_timestamped_log_path(log_path: PathLike) -> Path:
    """Insert a timestamp before the suffix of a log path.

    Example: annotation.log -> annotation_20251209_080530.log
    """
    log_path = Path(log_path)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return log_path.with_name(f"{log_path.stem}_{timestamp}{log_path.suffix or '.log'}")


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    return handler


def close_logger(logger: logging.Logger) -> None:
    """Detach and close every handler of logger."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def get_logger(
    name: str,
    log_path: PathLike,
    level: int = logging.INFO,
    timestamped: bool = True,
    console: bool = False,
) -> Tuple[logging.Logger, Path]:
    """Return a logger writing to its own file.

    The logger does not propagate, so records from one command never end up
    in another command's log. Calling this again for the same name replaces
    the previous handlers.

    Parameters
    ----------
    name : str
        Logger name, usually the command name (``annotation``).
    log_path : PathLike
        Base path of the log file.
    level : int
        Logging level.
    timestamped : bool
        Keep earlier logs by adding a timestamp to the file name; when False
        the file is truncated.
    console : bool
        Echo records to stdout as well.

    Returns
    -------
    Tuple[logging.Logger, Path]
        The logger and the file it writes to.
    """
    actual_log_path = get_timestamped_log_path(log_path) if timestamped else Path(log_path)
    actual_log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    close_logger(logger)

    mode = "a" if timestamped else "w"
    logger.addHandler(_handler(logging.FileHandler(actual_log_path, mode=mode, encoding="utf-8"), level))
    if console:
        logger.addHandler(_handler(logging.StreamHandler(sys.stdout), level))

    return logger, actual_log_path


def _append(log_path: PathLike, text: str) -> None:
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(text)
        handle.write("\n")


def log_json(log_path: PathLike, record: Dict[str, Any], *, timestamp: bool = True) -> None:
    """Append record to log_path as one JSON line.

    A ``timestamp`` field is added unless the record has one or
    ``timestamp=False``.
    """
    if timestamp and "timestamp" not in record:
        record = {"timestamp": datetime.now().isoformat(timespec="seconds"), **record}
    _append(log_path, json.dumps(record, default=str))


def log_yaml(
    log_path: PathLike,
    record: Dict[str, Any],
    *,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Write record as a YAML document terminated by ``---``.

    Parameters
    ----------
    log_path : PathLike
        File to append to when no logger is given.
    record : dict
        Mapping to serialize.
    logger : logging.Logger, optional
        Send the document to this logger at INFO instead.
    """
    document = yaml.safe_dump(record, sort_keys=False).rstrip("\n") + "\n---"
    if logger is not None:
        logger.info("%s", document)
    else:
        _append(log_path, document)
