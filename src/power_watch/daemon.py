"""Background daemon for power-watch."""

import asyncio
import os
import signal
from dataclasses import dataclass
from datetime import datetime

import psutil
import structlog

from power_watch import __version__
from power_watch import logging as console
from power_watch.alerts import AlertDispatcher, AlertSink, CsvAlertLog, NotificationSink
from power_watch.collector import ProcessSource, PsutilCollector, core_count
from power_watch.config import Config
from power_watch.detector import OveruseDetector
from power_watch.logging import configure
from power_watch.notifications import Notifier
from power_watch.resolver import MetadataResolver
from power_watch.scanner import CycleResult, Scanner
from power_watch.tracker import ProcessTracker

log = structlog.get_logger()


@dataclass
class DaemonState:
    """Runtime state of the daemon."""

    running: bool = False
    last_cycle_time: datetime | None = None
    top_cpu: float = 0.0

    def update_cycle(self, result: CycleResult) -> None:
        """Update state after a cycle. Cycle and alert totals live on the Scanner."""
        self.top_cpu = result.summary[0].cpu_percent if result.summary else 0.0
        self.last_cycle_time = datetime.now()


def build_scanner(
    config: Config,
    source: ProcessSource | None = None,
    resolver: MetadataResolver | None = None,
    sinks: list[AlertSink] | None = None,
) -> Scanner:
    """Wire collector, tracker, detector and alert sinks from config."""
    if sinks is None:
        sinks = []
        if config.alerts.enabled:
            sinks.append(CsvAlertLog(config.alert_log_path))
        if config.alerts.notify:
            sinks.append(NotificationSink(Notifier(config.alerts)))

    detection = config.detection
    return Scanner(
        source=source or PsutilCollector(),
        tracker=ProcessTracker(
            core_count=core_count(),
            resolver=resolver or MetadataResolver(),
            keywords=config.classifier.keywords,
        ),
        detector=OveruseDetector(
            threshold_percent=detection.cpu_threshold_percent,
            duration_seconds=detection.duration_seconds,
        ),
        dispatcher=AlertDispatcher(sinks),
        summary_size=detection.summary_size,
    )


class Daemon:
    """Main daemon class running scan cycles at a fixed interval."""

    def __init__(self, config: Config, scanner: Scanner | None = None):
        config.validate()
        self.config = config
        self.state = DaemonState()
        self.scanner = scanner or build_scanner(config)
        self._shutdown_event = asyncio.Event()
        self._owns_pid_file = False

    async def start(self) -> None:
        """Start the daemon and run until shutdown."""
        log.info("daemon_starting", version=__version__)

        detection = self.config.detection
        log.info(
            "daemon_config",
            cpu_threshold_percent=detection.cpu_threshold_percent,
            duration_seconds=detection.duration_seconds,
            poll_interval_ms=detection.poll_interval_ms,
            core_count=self.scanner.tracker.core_count,
            keywords=len(self.config.classifier.keywords),
        )
        console.config_summary(
            detection.cpu_threshold_percent,
            detection.duration_seconds,
            detection.poll_interval_ms,
        )

        self._install_signal_handlers(asyncio.get_running_loop())

        if self._check_already_running():
            log.error("daemon_already_running")
            raise RuntimeError("Daemon is already running")

        self._write_pid_file()

        if self.config.alerts.enabled:
            CsvAlertLog(self.config.alert_log_path).ensure_header()
            console.alert_log_path(str(self.config.alert_log_path))

        self.state.running = True
        log.info("daemon_started")
        console.daemon_started()

        await self._main_loop()

    async def stop(self) -> None:
        """Stop the daemon gracefully."""
        log.info("daemon_stopping")
        console.daemon_stopping()
        self.state.running = False
        if self._owns_pid_file:
            self._remove_pid_file()
            self._owns_pid_file = False
        log.info(
            "daemon_stopped",
            cycles=self.scanner.cycle_count,
            alerts=self.scanner.alert_count,
        )

    def request_stop(self) -> None:
        """Stop scheduling further cycles."""
        self._shutdown_event.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        log.info("signal_received", signal=sig.name)
        console.signal_received(sig.name)
        self._shutdown_event.set()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route SIGTERM and SIGINT to _handle_signal.

        Windows event loops lack add_signal_handler; there the plain signal
        module handler hands off to the loop thread.
        """
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))
            except NotImplementedError:
                signal.signal(
                    sig,
                    lambda signum, frame: loop.call_soon_threadsafe(
                        self._handle_signal, signal.Signals(signum)
                    ),
                )
                log.debug("signal_handler_fallback", signal=sig.name)

    def _write_pid_file(self) -> None:
        """Write PID file."""
        self.config.pid_path.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_path.write_text(str(os.getpid()))
        self._owns_pid_file = True
        log.debug("pid_file_written", path=str(self.config.pid_path))

    def _remove_pid_file(self) -> None:
        """Remove PID file."""
        if self.config.pid_path.exists():
            self.config.pid_path.unlink()
            log.debug("pid_file_removed")

    def _check_already_running(self) -> bool:
        """Check if daemon is already running.

        Verifies not just that a process with the PID exists, but that it's
        actually the power-watch daemon, since PIDs are reused after reboot.
        """
        if not self.config.pid_path.exists():
            return False

        try:
            pid = int(self.config.pid_path.read_text().strip())
        except ValueError:
            log.warning("pid_file_invalid", reason="not a number")
            self._remove_pid_file()
            return False

        if pid == os.getpid():
            return False

        try:
            proc = psutil.Process(pid)
            cmdline_str = " ".join(proc.cmdline()).lower()
            if "power-watch" in cmdline_str or "power_watch" in cmdline_str:
                log.info("daemon_already_running_verified", pid=pid)
                console.already_running(pid)
                return True

            log.warning(
                "pid_file_stale",
                reason="different process",
                pid=pid,
                actual_process=proc.name(),
            )
            self._remove_pid_file()
            return False

        except psutil.NoSuchProcess:
            log.warning("pid_file_stale", reason="process not found", pid=pid)
            self._remove_pid_file()
            return False
        except psutil.AccessDenied:
            # Can't inspect process - assume it's running to be safe
            log.warning("pid_check_access_denied", pid=pid)
            return True

    def _report(self, result: CycleResult) -> None:
        """Write console output for one cycle."""
        if not result.ok:
            console.cycle_skipped(result.error)
            return
        for event in result.alerts:
            console.hog_detected(event.name, event.pid, event.cpu_percent, event.working_set_mb)

    async def _main_loop(self) -> None:
        """Run scan cycles at the configured interval until shutdown.

        Each iteration runs one complete cycle (snapshot, track, detect,
        evict, summarize), then sleeps for the rest of the interval. Cycles
        never overlap.
        """
        interval = self.config.detection.poll_interval
        heartbeat_every = self.config.system.heartbeat_cycles
        heartbeat_alerts = 0

        while not self._shutdown_event.is_set():
            try:
                iteration_start = asyncio.get_running_loop().time()

                # Blocking psutil and notification calls stay off the event loop
                result = await asyncio.get_running_loop().run_in_executor(
                    None, self.scanner.run_cycle
                )
                self.state.update_cycle(result)
                self._report(result)
                heartbeat_alerts += len(result.alerts)

                if self.scanner.cycle_count % heartbeat_every == 0:
                    log.info(
                        "daemon_heartbeat",
                        cycles=heartbeat_every,
                        tracked=len(self.scanner.tracker),
                        alerts=heartbeat_alerts,
                        top_cpu=round(self.state.top_cpu, 1),
                    )
                    console.heartbeat(
                        heartbeat_every,
                        len(self.scanner.tracker),
                        heartbeat_alerts,
                        self.state.top_cpu,
                    )
                    heartbeat_alerts = 0

                elapsed = asyncio.get_running_loop().time() - iteration_start
                sleep_time = interval - elapsed
                if sleep_time > 0:
                    try:
                        await asyncio.wait_for(self._shutdown_event.wait(), timeout=sleep_time)
                        break  # Shutdown requested during sleep
                    except asyncio.TimeoutError:
                        pass

            except asyncio.CancelledError:
                log.info("main_loop_cancelled")
                break
            except Exception as e:
                log.exception("cycle_failed", error=str(e))
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
                    break
                except asyncio.TimeoutError:
                    pass


async def run_daemon(config: Config | None = None) -> None:
    """Run the daemon until shutdown.

    Args:
        config: Optional config, loads from file if not provided
    """
    if config is None:
        config = Config.load()

    configure(config)

    daemon = Daemon(config)

    try:
        await daemon.start()
    except Exception as e:
        log.exception("daemon_crashed", error=str(e))
        raise
    finally:
        await daemon.stop()
        console.daemon_stopped()
