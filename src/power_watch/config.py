"""Configuration system for power-watch."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit


class ConfigError(ValueError):
    """Raised when configuration is invalid or cannot be parsed."""


# Substrings that mark a process as vendor bloat (RGB suites, launchers, updaters).
DEFAULT_KEYWORDS = [
    "razer",
    "rzr",
    "rgb",
    "synapse",
    "riot",
    "vanguard",
    "epicgames",
    "launcher",
    "updater",
    "adobe",
    "armoury",
    "i-cue",
    "icue",
    "aura",
    "mystic light",
    "galaxyclient",
]


@dataclass
class DetectionConfig:
    """Sustained CPU overuse detection configuration."""

    cpu_threshold_percent: float = 20.0  # Percent at or above which a process is overusing
    duration_seconds: float = 10.0  # Seconds of continuous overuse before an alert fires
    poll_interval_ms: int = 2000  # Milliseconds between scan cycles
    summary_size: int = 30  # Rows in the ranked summary view

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000


@dataclass
class ClassifierConfig:
    """Keyword list for flagging known-noise processes."""

    keywords: list[str] = field(default_factory=lambda: list(DEFAULT_KEYWORDS))


@dataclass
class AlertsConfig:
    """Alert sink configuration."""

    enabled: bool = True  # Write alert records to the CSV log
    notify: bool = True  # Show a desktop notification per alert
    sound: bool = True
    log_path: str = ""  # Empty means ~/power_watch_log.csv


@dataclass
class SystemConfig:
    """Daemon housekeeping configuration."""

    heartbeat_cycles: int = 30  # Log heartbeat every N cycles (~1 minute at 2s)
    log_max_bytes: int = 5 * 1024 * 1024  # Max daemon log size (5MB)
    log_backup_count: int = 3  # Number of rotated daemon logs to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "power-watch"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for the daemon log."""
        return Path.home() / ".local" / "state" / "power-watch"

    @property
    def runtime_dir(self) -> Path:
        """Runtime directory for the PID file.

        Stored in /tmp/ so it's cleared on reboot, avoiding stale PID files.
        """
        return Path("/tmp/power-watch")

    @property
    def log_path(self) -> Path:
        """Daemon log path (JSON Lines)."""
        return self.state_dir / "daemon.log"

    @property
    def pid_path(self) -> Path:
        """PID file path."""
        return self.runtime_dir / "daemon.pid"

    @property
    def alert_log_path(self) -> Path:
        """CSV alert log path."""
        if self.alerts.log_path:
            return Path(self.alerts.log_path).expanduser()
        return Path.home() / "power_watch_log.csv"

    def validate(self) -> None:
        """Reject values the detection loop cannot run with.

        Raises:
            ConfigError: If any detection setting is out of range.
        """
        d = self.detection
        if not 0 < d.cpu_threshold_percent <= 100:
            raise ConfigError(
                f"cpu_threshold_percent must be in (0, 100], got {d.cpu_threshold_percent}"
            )
        if d.duration_seconds <= 0:
            raise ConfigError(f"duration_seconds must be > 0, got {d.duration_seconds}")
        if d.poll_interval_ms < 100:
            raise ConfigError(f"poll_interval_ms must be >= 100, got {d.poll_interval_ms}")
        if d.summary_size < 1:
            raise ConfigError(f"summary_size must be >= 1, got {d.summary_size}")
        if self.system.heartbeat_cycles < 1:
            raise ConfigError(
                f"heartbeat_cycles must be >= 1, got {self.system.heartbeat_cycles}"
            )

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("detection", "classifier", "alerts", "system"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() agree when no file exists.

        Raises:
            ConfigError: If the file cannot be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ConfigError(f"Failed to parse config file {path}: {e}") from e

        config = cls(
            detection=_load_detection_config(data.get("detection", {})),
            classifier=_load_classifier_config(data.get("classifier", {})),
            alerts=_load_alerts_config(data.get("alerts", {})),
            system=_load_system_config(data.get("system", {})),
        )
        config.validate()
        return config


def _load_detection_config(data: dict) -> DetectionConfig:
    """Load detection config from TOML data, using dataclass defaults for missing fields."""
    d = DetectionConfig()
    return DetectionConfig(
        cpu_threshold_percent=float(data.get("cpu_threshold_percent", d.cpu_threshold_percent)),
        duration_seconds=float(data.get("duration_seconds", d.duration_seconds)),
        poll_interval_ms=int(data.get("poll_interval_ms", d.poll_interval_ms)),
        summary_size=int(data.get("summary_size", d.summary_size)),
    )


def _load_classifier_config(data: dict) -> ClassifierConfig:
    """Load classifier keywords, normalized to lowercase with blanks dropped."""
    if "keywords" not in data:
        return ClassifierConfig()
    keywords = data["keywords"]
    if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
        raise ConfigError("classifier.keywords must be a list of strings")
    return ClassifierConfig(keywords=[str(k).strip().lower() for k in keywords if str(k).strip()])


def _load_alerts_config(data: dict) -> AlertsConfig:
    """Load alerts config from TOML data."""
    a = AlertsConfig()
    return AlertsConfig(
        enabled=bool(data.get("enabled", a.enabled)),
        notify=bool(data.get("notify", a.notify)),
        sound=bool(data.get("sound", a.sound)),
        log_path=str(data.get("log_path", a.log_path)),
    )


def _load_system_config(data: dict) -> SystemConfig:
    """Load system config from TOML data."""
    s = SystemConfig()
    return SystemConfig(
        heartbeat_cycles=int(data.get("heartbeat_cycles", s.heartbeat_cycles)),
        log_max_bytes=int(data.get("log_max_bytes", s.log_max_bytes)),
        log_backup_count=int(data.get("log_backup_count", s.log_backup_count)),
    )
