"""Logging for module runs: a timestamped log file plus coloured console output."""

import copy
import logging
import sys
from datetime import datetime
from pathlib import Path


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name for terminal output."""

    def __init__(self, fmt: str, datefmt: str, colors: dict):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colors = colors

    def format(self, record):
        # Copy so the file handler still sees a plain level name
        record = copy.copy(record)
        color = self.colors.get(record.levelname, self.colors["RESET"])
        record.levelname = f"{color}{record.levelname}{self.colors['RESET']}"
        return super().format(record)


class RunLogger:
    """Step-level logging for a module run.

    Parameters
    ----------
    log_dir : str or Path
        Directory for log files
    log_level : str
        Logging level name
    log_name : str
        Logger name
    console : bool
        Also log to stdout

    Example
    -------
    >>> run_logger = RunLogger("logs/", log_level="INFO")
    >>> run_logger.setup()
    >>> run_logger.log_step_start("classify", "Classify with SingleR")
    >>> run_logger.log_step_complete("classify", 45.2)
    """

    COLORS = {
        "DEBUG": "\033[0;36m",
        "INFO": "\033[0;34m",
        "WARNING": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "CRITICAL": "\033[1;31m",
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        log_dir,
        log_level: str = "INFO",
        log_name: str = "openscpca_tools.module_run",
        console: bool = True,
    ):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = self.log_dir / f"module_run_{timestamp}.log"

        self.log_level = getattr(logging, log_level.upper())
        self.console = console
        self.logger = logging.getLogger(log_name)
        self.logger.setLevel(self.log_level)
        self.logger.propagate = False
        self.logger.handlers = []

    def setup(self) -> None:
        file_handler = logging.FileHandler(self.log_file, mode="w")
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s | %(levelname)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        self.logger.addHandler(file_handler)

        if self.console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)
            console_handler.setFormatter(
                ColoredFormatter(
                    fmt="%(asctime)s %(levelname)s %(message)s",
                    datefmt="%H:%M:%S",
                    colors=self.COLORS,
                )
            )
            self.logger.addHandler(console_handler)

    def close(self) -> None:
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    def log_step_start(self, step_id: str, step_name: str) -> None:
        separator = "=" * 72
        self.logger.info(separator)
        self.logger.info("Starting step %s: %s", step_id, step_name)
        self.logger.info(separator)

    def log_step_complete(self, step_id: str, duration: float) -> None:
        self.logger.info("Step %s completed in %s", step_id, self.format_duration(duration))

    def log_step_error(self, step_id: str, error: str) -> None:
        self.logger.error("Step %s failed: %s", step_id, error)

    def log_step_output(self, step_id: str, output: str, max_chars: int = 2000) -> None:
        """Write captured script output to the log at DEBUG level."""
        output = (output or "").strip()
        if not output:
            return
        if len(output) > max_chars:
            output = "..." + output[-max_chars:]
        for line in output.splitlines():
            self.logger.debug("[%s] %s", step_id, line)

    def info(self, message: str, *args) -> None:
        self.logger.info(message, *args)

    def warning(self, message: str, *args) -> None:
        self.logger.warning(message, *args)

    def error(self, message: str, *args) -> None:
        self.logger.error(message, *args)

    def debug(self, message: str, *args) -> None:
        self.logger.debug(message, *args)

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format seconds as e.g. ``45.2s``, ``1m 23s`` or ``2h 15m``."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        if seconds < 3600:
            return f"{int(seconds // 60)}m {int(seconds % 60)}s"
        return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60)}m"
