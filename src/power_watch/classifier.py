"""Keyword classification of processes."""

from collections.abc import Iterable

from power_watch.resolver import ProcessMetadata

# Names the OS uses for its own pseudo-processes
SYSTEM_PROCESS_NAMES = frozenset({"system", "idle"})


def classify(metadata: ProcessMetadata | None, name: str, keywords: Iterable[str]) -> bool:
    """Return True if any keyword occurs in the process's name or metadata.

    Name, description, publisher and path are joined and lower-cased; each
    keyword is matched as a plain substring. Absent metadata counts as empty.
    """
    meta = metadata or ProcessMetadata()
    blob = " ".join((name, meta.description, meta.publisher, meta.path)).lower()
    return any(k.lower() in blob for k in keywords if k)


def looks_like_system_process(name: str, publisher: str) -> bool:
    """Return True if terminating this process could destabilize the OS."""
    return name.lower() in SYSTEM_PROCESS_NAMES or "microsoft" in publisher.lower()
