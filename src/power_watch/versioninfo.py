"""Executable version-resource lookup.

On Windows, uses ctypes to call version.dll directly (GetFileVersionInfoW +
VerQueryValueW) and reads FileDescription and CompanyName from the first
translation in the resource. Other platforms have no version resources, so
lookups return an empty VersionInfo.

All functions return empty strings on failure rather than raising.
"""

import ctypes
import sys
from ctypes import POINTER, byref, c_uint, c_ushort, c_void_p, c_wchar_p
from dataclasses import dataclass

# Fallback code page pair (US English, Unicode) when no translation table exists
DEFAULT_TRANSLATION = (0x0409, 0x04B0)


@dataclass(frozen=True)
class VersionInfo:
    """Strings read from an executable's version resource."""

    description: str = ""
    publisher: str = ""


def _load_version_dll():
    """Load version.dll with argument types set, or None off Windows."""
    if sys.platform != "win32":
        return None
    try:
        dll = ctypes.WinDLL("version")  # type: ignore[attr-defined]
    except OSError:
        return None

    dll.GetFileVersionInfoSizeW.argtypes = [c_wchar_p, POINTER(c_uint)]
    dll.GetFileVersionInfoSizeW.restype = c_uint
    dll.GetFileVersionInfoW.argtypes = [c_wchar_p, c_uint, c_uint, c_void_p]
    dll.GetFileVersionInfoW.restype = ctypes.c_int
    dll.VerQueryValueW.argtypes = [c_void_p, c_wchar_p, POINTER(c_void_p), POINTER(c_uint)]
    dll.VerQueryValueW.restype = ctypes.c_int
    return dll


_version = _load_version_dll()


def _query(buf: ctypes.Array, sub_block: str) -> tuple[int, int]:
    """Return (address, length) of a version sub-block, or (0, 0) if missing."""
    ptr = c_void_p()
    length = c_uint()
    if not _version.VerQueryValueW(buf, sub_block, byref(ptr), byref(length)):
        return 0, 0
    return ptr.value or 0, length.value


def _translation(buf: ctypes.Array) -> tuple[int, int]:
    """Return the first (language, code page) pair in the resource."""
    addr, length = _query(buf, "\\VarFileInfo\\Translation")
    if not addr or length < 4:
        return DEFAULT_TRANSLATION
    words = ctypes.cast(addr, POINTER(c_ushort))
    return words[0], words[1]


def _string(buf: ctypes.Array, lang: int, codepage: int, key: str) -> str:
    addr, length = _query(buf, f"\\StringFileInfo\\{lang:04x}{codepage:04x}\\{key}")
    if not addr or length == 0:
        return ""
    return ctypes.wstring_at(addr).strip()


def read_version_info(path: str) -> VersionInfo:
    """Read description and publisher for an executable.

    Args:
        path: Full path to the executable image

    Returns:
        VersionInfo with whatever strings exist; empty when the file has no
        version resource, cannot be read, or the platform has none.
    """
    if _version is None or not path:
        return VersionInfo()

    handle = c_uint()
    size = _version.GetFileVersionInfoSizeW(path, byref(handle))
    if size == 0:
        return VersionInfo()

    buf = ctypes.create_string_buffer(size)
    if not _version.GetFileVersionInfoW(path, 0, size, buf):
        return VersionInfo()

    lang, codepage = _translation(buf)
    return VersionInfo(
        description=_string(buf, lang, codepage, "FileDescription"),
        publisher=_string(buf, lang, codepage, "CompanyName"),
    )
