"""Desktop notification system for power-watch."""

import subprocess
import sys

import structlog

from power_watch.config import AlertsConfig

log = structlog.get_logger()

HOG_TITLE = "Power Hog Detected"


def _notification_command(title: str, message: str, sound: bool) -> list[str] | None:
    """Build the platform notification command, or None if unsupported."""
    if sys.platform == "darwin":
        sound_part = 'sound name "Funk"' if sound else ""
        safe_title = title.replace('"', '\\"')
        safe_message = message.replace('"', '\\"')
        script = f'display notification "{safe_message}" with title "{safe_title}" {sound_part}'
        return ["osascript", "-e", script]
    if sys.platform.startswith("linux"):
        return ["notify-send", "--urgency=normal", "--app-name=power-watch", title, message]
    return None


def _show_windows_toast(title: str, message: str) -> None:
    """Show a Windows toast without blocking the caller."""
    from win10toast import ToastNotifier

    ToastNotifier().show_toast(title, message, duration=5, threaded=True)


def send_notification(title: str, message: str, sound: bool = True) -> bool:
    """Send a desktop notification.

    Uses a toast on Windows, osascript on macOS and notify-send on Linux.

    Args:
        title: Notification title
        message: Notification body
        sound: Whether to play the default sound (macOS only)

    Returns:
        True if notification was sent successfully
    """
    if sys.platform == "win32":
        try:
            _show_windows_toast(title, message)
            log.debug("notification_sent", title=title)
            return True
        except Exception as e:
            log.warning("notification_failed", error=repr(e))
            return False

    command = _notification_command(title, message, sound)
    if command is None:
        log.debug("notification_unsupported", platform=sys.platform)
        return False

    try:
        subprocess.run(command, capture_output=True, timeout=5)
        log.debug("notification_sent", title=title)
        return True
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
        log.warning("notification_failed", error=str(e))
        return False


class Notifier:
    """Sends user-facing notifications based on alert configuration."""

    def __init__(self, config: AlertsConfig):
        self.config = config

    def hog_detected(self, name: str, pid: int, cpu_percent: float, working_set_mb: float) -> bool:
        """Notify about a process that sustained high CPU."""
        if not self.config.notify:
            return False

        return send_notification(
            title=HOG_TITLE,
            message=(
                f"{name} (PID {pid}) is using {cpu_percent:.1f}% CPU "
                f"and {working_set_mb:.1f} MB"
            ),
            sound=self.config.sound,
        )
