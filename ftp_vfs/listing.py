"""
Directory listing parsers.

Turns MLSD/MLST facts and LIST / ``ls -la`` lines (Unix and Windows server
formats) into RemoteFileInfo records. Shared by the FTP and SCP backends.
"""

from __future__ import annotations

import logging
import posixpath
from datetime import datetime

from .remote import FilePermissions, RemoteFileInfo

logger = logging.getLogger(__name__)

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}


def parse_mlsx_time(time_str: str) -> datetime | None:
    """Parse MLSD modify time format (YYYYMMDDHHmmSS or YYYYMMDDHHmmSS.sss)."""
    if not time_str:
        return None
    try:
        return datetime.strptime(time_str.split(".")[0], "%Y%m%d%H%M%S")
    except ValueError:
        logger.warning("Failed to parse MLSD time: %s", time_str)
        return None


def mlsx_permissions(facts: dict[str, str], is_dir: bool) -> FilePermissions:
    """Permissions from the UNIX.mode fact, or from the RFC 3659 perm fact."""
    mode = facts.get("unix.mode")
    if mode:
        try:
            return FilePermissions.from_mode(int(mode, 8))
        except ValueError:
            logger.warning("Failed to parse UNIX.mode fact: %s", mode)
    perm = facts.get("perm")
    if perm is None:
        return FilePermissions()
    writable = "cmp" if is_dir else "wa"
    return FilePermissions(user_write=any(flag in perm.lower() for flag in writable))


def parse_mlsx_facts(text: str) -> tuple[dict[str, str], str]:
    """Split ``type=file;size=12;modify=...; name`` into (facts, name)."""
    facts_text, _, name = text.partition(" ")
    facts = {}
    for part in facts_text.split(";"):
        if "=" in part:
            key, value = part.split("=", 1)
            facts[key.lower()] = value
    return facts, name


def is_pseudo_entry(facts: dict[str, str]) -> bool:
    """True for the cdir/pdir entries some servers include in MLSD output."""
    return facts.get("type", "").lower() in ("cdir", "pdir")


def info_from_facts(full_name: str, facts: dict[str, str]) -> RemoteFileInfo:
    is_dir = facts.get("type", "").lower() in ("dir", "cdir", "pdir")
    size = int(facts.get("size", 0) or 0) if not is_dir else 0
    return RemoteFileInfo.for_path(
        full_name,
        length=size,
        last_write_time=parse_mlsx_time(facts.get("modify", "")),
        is_directory=is_dir,
        permissions=mlsx_permissions(facts, is_dir),
    )


def parse_list_line(line: str, directory: str) -> RemoteFileInfo | None:
    """
    Parse a single line from LIST or ``ls -la`` output.

    Handles both Unix and Windows FTP server formats. Returns None for
    lines that carry no entry (``total 12``) or cannot be parsed.
    """
    line = line.rstrip("\r\n")
    parts = line.split()
    if len(parts) < 4:
        return None

    # Unix format: drwxr-xr-x  2 user group 4096 Dec 10 12:34 filename
    if len(parts[0]) >= 10 and parts[0][0] in "dl-":
        return _parse_unix_list_line(line, directory)

    # Windows format: 12-10-20  12:34PM  <DIR>  dirname
    if "-" in parts[0] and len(parts[0]) <= 10:
        return _parse_windows_list_line(line, directory)

    logger.warning("Unknown LIST format: %s", line)
    return None


def _parse_unix_list_line(line: str, directory: str) -> RemoteFileInfo | None:
    parts = line.split(None, 8)
    if len(parts) < 9:
        logger.warning("Failed to parse Unix LIST line: %s", line)
        return None
    try:
        mode_text, size_text, name = parts[0], parts[4], parts[8]
        is_dir = mode_text[0] == "d"
        if mode_text[0] == "l" and " -> " in name:
            name = name.split(" -> ", 1)[0]
        return RemoteFileInfo(
            full_name=posixpath.join(directory, name),
            name=name,
            length=int(size_text) if not is_dir else 0,
            last_write_time=parse_unix_list_time(parts[5:8]),
            is_directory=is_dir,
            permissions=FilePermissions.from_text(mode_text),
        )
    except (IndexError, ValueError) as e:
        logger.warning("Failed to parse Unix LIST line: %s - %s", line, e)
        return None


def parse_unix_list_time(time_parts: list[str]) -> datetime | None:
    """Parse Unix LIST time format (e.g., 'Dec 10 12:34' or 'Dec 10  2020')."""
    if len(time_parts) < 3:
        return None

    month_str, day_str, time_or_year = time_parts
    try:
        month = MONTHS[month_str.lower()[:3]]
        day = int(day_str)

        if ":" in time_or_year:
            # Recent entries omit the year; a date in the future belongs to last year
            hour, minute = map(int, time_or_year.split(":"))
            now = datetime.now()
            stamp = datetime(now.year, month, day, hour, minute)
            if stamp > now:
                stamp = stamp.replace(year=now.year - 1)
            return stamp

        return datetime(int(time_or_year), month, day)
    except (ValueError, KeyError):
        logger.warning("Failed to parse LIST time: %s", " ".join(time_parts))
        return None


def _parse_windows_list_line(line: str, directory: str) -> RemoteFileInfo | None:
    parts = line.split(None, 3)
    if len(parts) < 4:
        return None
    try:
        is_dir = parts[2].upper() == "<DIR>"
        name = parts[3]
        return RemoteFileInfo(
            full_name=posixpath.join(directory, name),
            name=name,
            length=0 if is_dir else int(parts[2]),
            last_write_time=parse_windows_list_time(parts[0], parts[1]),
            is_directory=is_dir,
        )
    except (IndexError, ValueError) as e:
        logger.warning("Failed to parse Windows LIST line: %s - %s", line, e)
        return None


def parse_windows_list_time(date_str: str, time_str: str) -> datetime | None:
    """Parse Windows LIST time format (MM-DD-YY HH:MMAM/PM)."""
    try:
        month, day, year = map(int, date_str.split("-"))
        if year < 100:
            year += 2000 if year < 70 else 1900

        time_str = time_str.upper()
        is_pm = "PM" in time_str
        hour, minute = map(int, time_str.replace("AM", "").replace("PM", "").split(":"))

        if is_pm and hour != 12:
            hour += 12
        elif not is_pm and hour == 12:
            hour = 0

        return datetime(year, month, day, hour, minute)
    except (ValueError, IndexError):
        logger.warning("Failed to parse Windows LIST time: %s %s", date_str, time_str)
        return None
