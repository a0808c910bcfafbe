"""CLI commands for power-watch."""

import click

from power_watch.config import Config, ConfigError


def _load_config() -> Config:
    """Load config, turning validation errors into a clean CLI failure."""
    try:
        return Config.load()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(package_name="power-watch")
def main() -> None:
    """Catch processes that keep the CPU busy for too long."""
    pass


@main.command()
def daemon() -> None:
    """Run the background watcher."""
    import asyncio

    from power_watch.daemon import run_daemon

    config = _load_config()
    asyncio.run(run_daemon(config))


def _summary_table(result, threshold: float, tracked: int):
    """Build a rich Table for one cycle's summary."""
    from rich.table import Table

    from power_watch.formatting import format_percent

    totals = result.totals
    caption = (
        f"CPU: {format_percent(totals.cpu_percent)}   |   "
        f"Disk: {format_percent(totals.disk_percent)}   |   "
        f"GPU3D: {format_percent(totals.gpu_percent)}"
        if totals is not None
        else ""
    )
    table = Table(title=f"power-watch  [dim]{tracked} processes[/]", caption=caption)
    table.add_column("Process")
    table.add_column("PID", justify="right")
    table.add_column("CPU %", justify="right")
    table.add_column("RAM (MB)", justify="right")
    table.add_column("Flagged")

    for row in result.summary:
        style = "bright_red" if row.cpu_percent >= threshold else None
        table.add_row(
            row.name,
            str(row.pid),
            f"{row.cpu_percent:.1f}",
            f"{row.working_set_mb:.1f}",
            "Yes" if row.is_flagged else "",
            style=style,
        )
    return table


@main.command()
@click.option("--cycles", "-c", type=int, default=None, help="Stop after N refreshes")
@click.option("--alerts/--no-alerts", default=False, help="Also write alerts and notify")
def top(cycles: int | None, alerts: bool) -> None:
    """Show the busiest processes, refreshed every poll interval."""
    import time

    from rich.console import Console
    from rich.live import Live

    from power_watch.collector import SystemCounters
    from power_watch.daemon import build_scanner

    config = _load_config()
    scanner = build_scanner(config, sinks=None if alerts else [])
    scanner.counters = SystemCounters()
    interval = config.detection.poll_interval
    threshold = config.detection.cpu_threshold_percent

    # First cycle only records baselines
    click.echo("Gathering samples...")
    scanner.run_cycle()

    refreshes = 0
    try:
        with Live(console=Console(), auto_refresh=False) as live:
            while cycles is None or refreshes < cycles:
                time.sleep(interval)
                result = scanner.run_cycle()
                live.update(
                    _summary_table(result, threshold, len(scanner.tracker)), refresh=True
                )
                refreshes += 1
    except KeyboardInterrupt:
        pass


@main.command()
@click.argument("pid", type=int)
@click.option("--sample", "-s", default=1.0, help="Seconds to sample CPU usage (0 to skip)")
def inspect(pid: int, sample: float) -> None:
    """Show what a process is before deciding to kill it."""
    import time

    import psutil

    from power_watch.classifier import classify, looks_like_system_process
    from power_watch.collector import core_count
    from power_watch.formatting import format_mb
    from power_watch.resolver import MetadataResolver, ResolutionStatus
    from power_watch.tracker import compute_cpu_percent

    config = _load_config()

    try:
        proc = psutil.Process(pid)
        name = proc.name()
        mem_bytes = proc.memory_info().rss
    except psutil.NoSuchProcess:
        raise click.ClickException(f"No process with PID {pid}")
    except psutil.AccessDenied:
        raise click.ClickException(f"Access denied reading PID {pid}")

    result = MetadataResolver().resolve(pid)
    meta = result.metadata
    description = meta.description if meta and meta.description else "No description"
    publisher = meta.publisher if meta and meta.publisher else "Unknown publisher"
    if meta and meta.path:
        path = meta.path
    elif result.status is ResolutionStatus.UNAVAILABLE:
        path = "No executable (kernel/system process)"
    else:
        path = "Path unavailable (system/permission)"
    flagged = classify(meta, name, config.classifier.keywords)

    click.echo(f"Name: {name}")
    click.echo(f"PID: {pid}")
    click.echo(f"Description: {description}")
    click.echo(f"Publisher: {publisher}")
    click.echo(f"Path: {path}")
    click.echo(f"Flagged: {'YES - matches keyword list' if flagged else 'No'}")

    if sample > 0:
        try:
            before = proc.cpu_times()
            start = time.monotonic()
            time.sleep(sample)
            after = proc.cpu_times()
            elapsed = time.monotonic() - start
            cpu_delta = (after.user + after.system) - (before.user + before.system)
            cpu = compute_cpu_percent(cpu_delta, elapsed, core_count())
            click.echo(f"CPU: {cpu:.1f}%")
        except psutil.Error:
            click.echo("CPU: N/A (process exited or access denied)")

    click.echo(f"Working set: {format_mb(mem_bytes)} MB")

    if looks_like_system_process(name, meta.publisher if meta else ""):
        click.echo(
            "\nWarning: this looks like a system process. Killing it can freeze or crash the OS."
        )


@main.command()
@click.option("--limit", "-n", default=20, help="Number of alerts to show")
def alerts(limit: int) -> None:
    """List recent alerts from the CSV log."""
    from power_watch.alerts import CsvAlertLog

    config = _load_config()
    alert_log = CsvAlertLog(config.alert_log_path)
    records = alert_log.read_recent(limit)

    if not records:
        click.echo("No alerts recorded.")
        return

    click.echo(f"{'Timestamp':32}  {'Process':24}  {'PID':>7}  {'CPU %':>6}  {'RAM (MB)':>9}")
    click.echo("-" * 86)
    for rec in records:
        click.echo(
            f"{rec['Timestamp'][:32]:32}  {rec['ProcessName'][:24]:24}  {rec['PID']:>7}  "
            f"{rec['CPUPercent']:>6}  {rec['WorkingSetMB']:>9}"
        )


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    cfg = _load_config()

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo()
    click.echo("[detection]")
    click.echo(f"  cpu_threshold_percent = {cfg.detection.cpu_threshold_percent}")
    click.echo(f"  duration_seconds = {cfg.detection.duration_seconds}")
    click.echo(f"  poll_interval_ms = {cfg.detection.poll_interval_ms}")
    click.echo(f"  summary_size = {cfg.detection.summary_size}")
    click.echo()
    click.echo("[classifier]")
    click.echo(f"  keywords = {', '.join(cfg.classifier.keywords)}")
    click.echo()
    click.echo("[alerts]")
    click.echo(f"  enabled = {cfg.alerts.enabled}")
    click.echo(f"  notify = {cfg.alerts.notify}")
    click.echo(f"  log = {cfg.alert_log_path}")


@config.command("edit")
def config_edit() -> None:
    """Open config file in editor."""
    import os
    import subprocess

    cfg = _load_config()

    if not cfg.config_path.exists():
        cfg.save()
        click.echo(f"Created default config at {cfg.config_path}")

    editor = os.environ.get("EDITOR", "nano")
    subprocess.run([editor, str(cfg.config_path)])


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")
