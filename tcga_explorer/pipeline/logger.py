"""Structured logging for pipeline execution."""

import copy
import logging
import sys
from pathlib import Path
from typing import Optional

from tcga_explorer.io.logging import get_timestamped_log_path


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for console output."""

    def __init__(self, fmt: str, datefmt: str, colors: dict):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colors = colors

    def format(self, record):
        # Other handlers share the record
        record = copy.copy(record)
        levelname = record.levelname
        color = self.colors.get(levelname, self.colors["RESET"])
        reset = self.colors["RESET"]
        record.levelname = f"{color}{levelname}{reset}"
        return super().format(record)


class PipelineLogger:
    """Structured logging for pipeline execution.

    Provides file logging (detailed, persistent) and console logging
    (colored, user-friendly) with structured events for stage start,
    completion, errors and orchestrator state transitions. Module loggers
    under ``tcga_explorer`` propagate into the same handlers.

    Parameters
    ----------
    log_dir : str
        Directory for log files
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_name : str, optional
        Logger name. Default: "tcga_explorer"
    log_file : str, optional
        Explicit log file path. Default: timestamped file in log_dir
    console : bool
        Also log to stdout

    Attributes
    ----------
    log_dir : Path
        Directory for log files
    log_file : Path
        Path to the main pipeline log file
    logger : logging.Logger
        Python logger instance

    Example
    -------
    >>> logger = PipelineLogger("logs/", log_level="INFO")
    >>> logger.setup()
    >>> logger.log_stage_start(1, "preprocessing")
    >>> logger.log_stage_complete("preprocessing", 45.2)
    """

    COLORS = {
        "DEBUG": "\033[0;36m",  # Cyan
        "INFO": "\033[0;34m",  # Blue
        "WARNING": "\033[1;33m",  # Yellow
        "ERROR": "\033[0;31m",  # Red
        "CRITICAL": "\033[1;31m",  # Bold Red
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        log_dir: str,
        log_level: str = "INFO",
        log_name: str = "tcga_explorer",
        log_file: Optional[str] = None,
        console: bool = True,
    ):
        self.log_dir = Path(log_dir)
        if log_file:
            self.log_file = Path(log_file)
        else:
            self.log_file = get_timestamped_log_path(self.log_dir / "pipeline.log")

        self.console = console
        self.log_level = getattr(logging, log_level.upper())
        self.logger = logging.getLogger(log_name)

    def setup(self) -> None:
        """Configure logging handlers.

        Replaces any handlers on the named logger with a file handler
        (detailed logs) and, unless disabled, a console handler (colored
        output). Until this is called, messages go through whatever the
        named logger already has.
        """
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        self.logger.setLevel(self.log_level)
        self.close()

        file_handler = logging.FileHandler(self.log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(self._get_file_formatter())
        self.logger.addHandler(file_handler)

        if self.console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)
            console_handler.setFormatter(self._get_console_formatter())
            self.logger.addHandler(console_handler)

    def close(self) -> None:
        """Detach and close all handlers."""
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

    def _get_file_formatter(self) -> logging.Formatter:
        """Get formatter for file logging (detailed, no colors)."""
        return logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def _get_console_formatter(self) -> logging.Formatter:
        """Get formatter for console logging (colored, concise)."""
        return ColoredFormatter(
            fmt="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
            colors=self.COLORS,
        )

    def log_stage_start(self, stage_index: int, stage_name: str, n_units: int = 0) -> None:
        """Log the start of a pipeline stage.

        Parameters
        ----------
        stage_index : int
            Position of the stage in the pipeline
        stage_name : str
            Stage name
        n_units : int
            Number of work units enumerated for the stage
        """
        separator = "=" * 80
        self.logger.info(separator)
        self.logger.info(f"Starting Stage {stage_index}: {stage_name} ({n_units} units)")
        self.logger.info(separator)

    def log_stage_complete(self, stage_name: str, duration: float) -> None:
        """Log completion of a stage.

        Parameters
        ----------
        stage_name : str
            Stage name
        duration : float
            Execution time in seconds
        """
        duration_str = self.format_duration(duration)
        self.logger.info(f"Stage {stage_name} completed in {duration_str}")

    def log_stage_skipped(self, stage_name: str, reason: str) -> None:
        """Log a stage skipped without execution."""
        self.logger.info(f"[SKIP] Stage {stage_name}: {reason}")

    def log_stage_error(self, stage_name: str, error: str) -> None:
        """Log a stage error.

        Parameters
        ----------
        stage_name : str
            Stage name
        error : str
            Error message or exception
        """
        self.logger.error(f"Stage {stage_name} failed: {error}")

    def log_transition(self, old_state: str, new_state: str) -> None:
        """Log an orchestrator state transition."""
        self.logger.info(f"Pipeline state: {old_state} -> {new_state}")

    def log_info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def log_warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def log_error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format duration in seconds to human-readable string.

        Parameters
        ----------
        seconds : float
            Duration in seconds

        Returns
        -------
        str
            Formatted string (e.g., "45.2s", "1m 23s", "2h 15m")
        """
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            mins = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{mins}m {secs}s"
        else:
            hours = int(seconds // 3600)
            mins = int((seconds % 3600) // 60)
            return f"{hours}h {mins}m"
