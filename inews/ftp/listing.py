"""Directory listing decoder for the iNews FTP client.

Turns the raw LIST lines of an iNews FTP server into typed entries:
queues (sub-directories) and stories (files named
IDENTIFIER:LOCATOR:LOCATOR, see the iNews FTP server guide).
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Union

from inews.ftp.exceptions import ProtocolDecodeError

logger = logging.getLogger("inews.listing")


# Permission string iNews uses for queues
QUEUE_PREFIX = "d---------"

STORY_FILE_PATTERN = re.compile(r"[A-Za-z0-9]{8}:[A-Za-z0-9]{8}:[A-Za-z0-9]{8}")
STORY_NAME_PATTERN = re.compile(r"[A-Za-z0-9]{8}:[A-Za-z0-9]{8}:[A-Za-z0-9]{8} (.+)$")
QUEUE_NAME_PATTERN = re.compile(r"([A-Za-z0-9-]+)$")
FLAGS_PATTERN = re.compile(r"\S+")

# " Jan  5 12:34" or " Jan  5  2023"
DATE_PATTERN = re.compile(r" ([A-Za-z]{3,4})[ ]+([0-9]{1,2})[ ]+([0-9]{4}|([0-9]{1,2}):([0-9]{2}))")

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


class FileType(Enum):
    """Kind of directory entry."""
    STORY = "story"
    QUEUE = "queue"


@dataclass
class EntryFlags:
    """Flags carried in the permission column of a story line."""
    floated: bool = False


@dataclass
class StoryEntry:
    """A story file in a queue."""
    file: str
    identifier: str
    locator: str
    story_name: str = ""
    flags: EntryFlags = field(default_factory=EntryFlags)
    modified: Optional[datetime] = None

    @property
    def filetype(self) -> FileType:
        return FileType.STORY


@dataclass
class QueueEntry:
    """A sub-queue (directory)."""
    file: str
    modified: Optional[datetime] = None

    @property
    def filetype(self) -> FileType:
        return FileType.QUEUE


DirectoryEntry = Union[StoryEntry, QueueEntry]


def story_identifier_from_filename(file_name: str) -> str:
    """Get the story identifier (XXXXXXXX in XXXXXXXX:YYYYYYYY:ZZZZZZZZ)."""
    return file_name.split(":")[0]


def story_locator_from_filename(file_name: str) -> str:
    """Get the story locator (YYYYYYYY:ZZZZZZZZ in XXXXXXXX:YYYYYYYY:ZZZZZZZZ)."""
    parts = file_name.split(":")
    return ":".join(parts[1:3])


def is_queue_item(list_item: str) -> bool:
    """True if the listing line describes a queue."""
    return list_item.startswith(QUEUE_PREFIX)


def story_filename_from_list_item(list_item: str) -> Optional[str]:
    """Get the story filename token of a listing line, if any."""
    match = STORY_FILE_PATTERN.search(list_item)
    return match.group(0) if match else None


def story_name_from_list_item(list_item: str) -> str:
    """Get the free-text story name following the filename."""
    match = STORY_NAME_PATTERN.search(list_item)
    return match.group(1) if match else ""


def queue_name_from_list_item(list_item: str) -> Optional[str]:
    """Get the queue name, the last token of a queue line."""
    match = QUEUE_NAME_PATTERN.search(list_item)
    return match.group(1) if match else None


def flags_from_list_item(list_item: str) -> EntryFlags:
    """
    Get the flags of a listing line.

    A story is floated when the second character of the permission
    column is 'f'.
    """
    match = FLAGS_PATTERN.search(list_item)
    if not match:
        return EntryFlags()
    token = match.group(0)
    return EntryFlags(floated=len(token) > 1 and token[1] == "f")


def date_from_list_item(list_item: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Get the modification time of a listing line.

    Listings show either a year (older entries) or a time of day
    (entries from the last months). A time of day is taken to be in the
    current year, unless that would put the month after the current
    month, in which case it is last year's.

    Args:
        list_item: Raw listing line
        now: Reference time (default: now)

    Returns:
        Naive local datetime, or None if the line has no readable date
    """
    match = DATE_PATTERN.search(list_item)
    if not match:
        return None

    month = MONTHS.get(match.group(1)[:3].lower())
    if month is None:
        return None

    now = now or datetime.now()
    day = int(match.group(2))

    try:
        if match.group(4) is not None:
            modified = datetime(now.year, month, day, int(match.group(4)), int(match.group(5)))
            if modified.month > now.month:
                modified = modified.replace(year=now.year - 1)
            return modified
        return datetime(int(match.group(3)), month, day)
    except ValueError:
        # Feb 29 rolled into a non-leap year, day 31 in a short month, 25:99...
        return None


def parse_list_item(list_item: str, now: Optional[datetime] = None) -> Optional[DirectoryEntry]:
    """
    Decode one listing line.

    Args:
        list_item: Raw LIST line
        now: Reference time for year inference

    Returns:
        QueueEntry, StoryEntry, or None if the line is neither
    """
    if is_queue_item(list_item):
        name = queue_name_from_list_item(list_item)
        if name is None:
            return None
        return QueueEntry(file=name, modified=date_from_list_item(list_item, now))

    file_name = story_filename_from_list_item(list_item)
    if file_name is None:
        return None

    return StoryEntry(
        file=file_name,
        identifier=story_identifier_from_filename(file_name),
        locator=story_locator_from_filename(file_name),
        story_name=story_name_from_list_item(list_item),
        flags=flags_from_list_item(list_item),
        modified=date_from_list_item(list_item, now),
    )


def parse_listing(lines: Sequence[str], now: Optional[datetime] = None) -> List[DirectoryEntry]:
    """
    Decode a whole directory listing.

    Lines that are neither queues nor stories (totals, blank lines) are
    skipped.

    Raises:
        ProtocolDecodeError: If the listing is not a sequence of strings
    """
    if isinstance(lines, (str, bytes)) or not isinstance(lines, Sequence):
        raise ProtocolDecodeError(f"directory listing of type {type(lines).__name__}")

    entries: List[DirectoryEntry] = []
    for line in lines:
        if not isinstance(line, str):
            raise ProtocolDecodeError(f"listing line {line!r}")
        entry = parse_list_item(line.rstrip("\r\n"), now)
        if entry is None:
            logger.debug(f"Skipping listing line: {line!r}")
            continue
        entries.append(entry)
    return entries
