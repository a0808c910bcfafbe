"""Best-effort executable metadata resolution."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import psutil
import structlog

from power_watch.versioninfo import VersionInfo, read_version_info

log = structlog.get_logger()


class ResolutionStatus(Enum):
    """How far metadata resolution got for a process."""

    UNRESOLVED = "unresolved"  # Not yet resolved, or a transient failure; retried
    RESOLVED = "resolved"  # Executable path known
    UNAVAILABLE = "unavailable"  # OS reports no executable image; never retried


@dataclass(frozen=True)
class ProcessMetadata:
    """Executable identity for a process. Missing fields are empty strings."""

    path: str = ""
    description: str = ""
    publisher: str = ""


@dataclass(frozen=True)
class ResolveResult:
    """Outcome of one resolution attempt."""

    status: ResolutionStatus
    metadata: ProcessMetadata | None = None
    reason: str = ""


class MetadataResolver:
    """Resolves executable path, description and publisher for a PID.

    Stateless: caching belongs to the tracker. Never raises; every failure
    becomes a ResolveResult with UNRESOLVED or UNAVAILABLE status.
    """

    def __init__(
        self,
        version_lookup: Callable[[str], VersionInfo] = read_version_info,
    ) -> None:
        self._version_lookup = version_lookup

    def resolve(self, pid: int) -> ResolveResult:
        """Resolve metadata for a process.

        Args:
            pid: Process ID to look up

        Returns:
            RESOLVED with metadata when the executable path is known (version
            strings are best effort), UNAVAILABLE when the OS reports no
            executable, UNRESOLVED on denial or if the process vanished.
        """
        try:
            path = psutil.Process(pid).exe()
        except psutil.AccessDenied:
            return ResolveResult(ResolutionStatus.UNRESOLVED, reason="access_denied")
        except psutil.NoSuchProcess:
            # Also covers ZombieProcess
            return ResolveResult(ResolutionStatus.UNRESOLVED, reason="gone")
        except (OSError, psutil.Error) as e:
            return ResolveResult(ResolutionStatus.UNRESOLVED, reason=str(e))

        if not path:
            # Kernel threads and PID 0 have no executable image
            return ResolveResult(ResolutionStatus.UNAVAILABLE, reason="no_executable")

        try:
            version = self._version_lookup(path)
        except Exception as e:
            log.debug("version_info_failed", pid=pid, path=path, error=repr(e))
            version = VersionInfo()

        return ResolveResult(
            ResolutionStatus.RESOLVED,
            metadata=ProcessMetadata(
                path=path,
                description=version.description,
                publisher=version.publisher,
            ),
        )
