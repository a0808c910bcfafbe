"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (daemon_started, hog_detected, heartbeat, etc.)
5. Structlog configuration (configure)

Console output uses Rich markup for colors. JSON file output via structlog
remains separate (machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

from power_watch.formatting import truncate

if TYPE_CHECKING:
    from power_watch.config import Config

# Rich console for colorful human-readable output
_console = Console(highlight=False)

# Module-level config reference for cpu_color (set by configure())
_config: "Config | None" = None


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    HOG = "[bold red]🔥[/]"
    SKIP = "[yellow]↷[/]"
    HEARTBEAT = "[magenta]♡[/]"
    SIGNAL = "⚡"


# ─────────────────────────────────────────────────────────────────────────────
# Level Styles
# ─────────────────────────────────────────────────────────────────────────────

_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Styling Helpers
# ─────────────────────────────────────────────────────────────────────────────


def cpu_color(cpu_percent: float) -> str:
    """Return Rich color name for a CPU percentage.

    Red at or above the configured threshold, yellow from half of it.

    Raises:
        RuntimeError: If configure() hasn't been called.
    """
    if _config is None:
        raise RuntimeError("cpu_color() called before configure()")

    threshold = _config.detection.cpu_threshold_percent
    if cpu_percent >= threshold:
        return "bright_red"
    elif cpu_percent >= threshold / 2:
        return "bright_yellow"
    return "green"


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def daemon_started() -> None:
    """Log daemon startup complete."""
    info("Daemon started", Icon.OK)


def daemon_stopping() -> None:
    """Log daemon shutdown initiated."""
    info("Daemon stopping...", Icon.WAIT)


def daemon_stopped() -> None:
    """Log daemon shutdown complete."""
    info("Daemon stopped", Icon.OK)


def signal_received(name: str) -> None:
    """Log signal received."""
    info(f"Received [bold]{name}[/]", Icon.SIGNAL)


def hog_detected(name: str, pid: int, cpu_percent: float, working_set_mb: float) -> None:
    """Log a sustained-overuse alert."""
    sc = cpu_color(cpu_percent)
    warn(
        f"[cyan]{truncate(name, 30)}[/] [dim]({pid})[/] "
        f"[{sc}]{cpu_percent:.1f}%[/] CPU, {working_set_mb:.1f} MB",
        Icon.HOG,
    )


def cycle_skipped(error_msg: str) -> None:
    """Log a scan cycle skipped because the snapshot failed."""
    warn(f"Scan skipped: {error_msg}", Icon.SKIP)


def heartbeat(cycles: int, tracked_count: int, alert_count: int, top_cpu: float) -> None:
    """Log periodic heartbeat stats."""
    tc = cpu_color(top_cpu)
    info(
        f"[cyan]{tracked_count}[/] tracked, top [{tc}]{top_cpu:.1f}%[/], "
        f"[dim]{alert_count} alerts in {cycles} cycles[/]",
        Icon.HEARTBEAT,
    )


def already_running(pid: int | None = None) -> None:
    """Log daemon already running error."""
    if pid:
        error(f"Another daemon already running [dim](PID {pid})[/]", Icon.FAIL)
    else:
        error("Another daemon already running", Icon.FAIL)


def config_summary(threshold: float, duration: float, interval_ms: int) -> None:
    """Log detection settings."""
    info(
        f"Config: alert at [cyan]{threshold:g}%[/] for [cyan]{duration:g}s[/], "
        f"poll every [cyan]{interval_ms}ms[/]"
    )


def alert_log_path(path: str) -> None:
    """Log where alert records are written."""
    info(f"Alert log: [cyan]{path}[/]")


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config) -> None:
    """Configure structlog with JSON file output.

    File output uses JSON Lines format for machine parsing, in local time.
    Console output is handled by Rich (see log functions above).

    Args:
        config: Application config with paths
    """
    global _config
    _config = config

    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.system.log_max_bytes,
        backupCount=config.system.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.INFO)
    stdlib_root.handlers.clear()

    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source("daemon"),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
            structlog.processors.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
