"""Unit tests for the directory listing decoder."""

from datetime import datetime

import pytest

from inews.ftp.exceptions import ProtocolDecodeError
from inews.ftp.listing import (
    EntryFlags,
    FileType,
    QueueEntry,
    StoryEntry,
    date_from_list_item,
    flags_from_list_item,
    is_queue_item,
    parse_list_item,
    parse_listing,
    story_identifier_from_filename,
    story_locator_from_filename,
)

from tests.conftest import TEST_NOW


STORY_LINE = "-rwxrwxrwx 1 0 0 0 Jan 5 12:34 AAAAAAAA:BBBBBBBB:CCCCCCCC SOME STORY"
QUEUE_LINE = "d--------- 1 news news 0 Jun 14 08:00 ARCHIVE"


class TestFilenameHelpers:
    """Tests for story filename splitting."""

    def test_identifier(self):
        assert story_identifier_from_filename("AAAAAAAA:BBBBBBBB:CCCCCCCC") == "AAAAAAAA"

    def test_locator(self):
        assert story_locator_from_filename("AAAAAAAA:BBBBBBBB:CCCCCCCC") == "BBBBBBBB:CCCCCCCC"


class TestParseListItem:
    """Tests for decoding single listing lines."""

    def test_story_line(self):
        """Test the canonical story line."""
        entry = parse_list_item(STORY_LINE, now=TEST_NOW)

        assert isinstance(entry, StoryEntry)
        assert entry.filetype == FileType.STORY
        assert entry.file == "AAAAAAAA:BBBBBBBB:CCCCCCCC"
        assert entry.identifier == "AAAAAAAA"
        assert entry.locator == "BBBBBBBB:CCCCCCCC"
        assert entry.story_name == "SOME STORY"
        assert entry.flags == EntryFlags(floated=False)
        assert entry.modified == datetime(2024, 1, 5, 12, 34)

    def test_story_without_name(self):
        """Test a story line with nothing after the filename."""
        entry = parse_list_item("-rwxrwxrwx 1 0 0 0 Jan 5 12:34 AAAAAAAA:BBBBBBBB:CCCCCCCC", now=TEST_NOW)

        assert isinstance(entry, StoryEntry)
        assert entry.story_name == ""

    def test_queue_line(self):
        """Test a queue line."""
        entry = parse_list_item(QUEUE_LINE, now=TEST_NOW)

        assert isinstance(entry, QueueEntry)
        assert entry.filetype == FileType.QUEUE
        assert entry.file == "ARCHIVE"
        assert entry.modified == datetime(2024, 6, 14, 8, 0)

    def test_queue_takes_precedence_over_story(self):
        """Test that a queue line with a story-shaped name is still a queue."""
        line = "d--------- 1 0 0 0 Jan 5 12:34 AAAAAAAA:BBBBBBBB:CCCCCCCC"
        entry = parse_list_item(line, now=TEST_NOW)

        assert isinstance(entry, QueueEntry)
        assert entry.file == "CCCCCCCC"

    def test_unrecognised_line(self):
        """Test that lines that are neither queue nor story are skipped."""
        assert parse_list_item("total 12") is None
        assert parse_list_item("") is None

    def test_is_queue_item(self):
        assert is_queue_item(QUEUE_LINE) is True
        assert is_queue_item(STORY_LINE) is False


class TestFlags:
    """Tests for the floated flag heuristic."""

    def test_floated(self):
        line = "-frwxrwxrw 1 0 0 0 Jan 5 12:34 AAAAAAAA:BBBBBBBB:CCCCCCCC FLOATED"
        assert flags_from_list_item(line).floated is True
        assert parse_list_item(line, now=TEST_NOW).flags.floated is True

    def test_not_floated(self):
        assert flags_from_list_item(STORY_LINE).floated is False

    def test_single_character_token(self):
        assert flags_from_list_item("- 1 0 0").floated is False

    def test_empty_line(self):
        assert flags_from_list_item("") == EntryFlags()


class TestDates:
    """Tests for listing date decoding."""

    def test_time_of_day_is_current_year(self):
        line = "-rwxrwxrwx 1 0 0 0 Jun 1 07:05 AAAAAAAA:BBBBBBBB:CCCCCCCC X"
        assert date_from_list_item(line, now=TEST_NOW) == datetime(2024, 6, 1, 7, 5)

    def test_later_month_rolls_back_a_year(self):
        line = "-rwxrwxrwx 1 0 0 0 Dec 24 18:00 AAAAAAAA:BBBBBBBB:CCCCCCCC X"
        assert date_from_list_item(line, now=TEST_NOW) == datetime(2023, 12, 24, 18, 0)

    def test_explicit_year(self):
        line = "-rwxrwxrwx 1 0 0 0 Mar 1 2020 AAAAAAAA:BBBBBBBB:CCCCCCCC X"
        assert date_from_list_item(line, now=TEST_NOW) == datetime(2020, 3, 1)

    def test_padded_day(self):
        line = "-rwxrwxrwx 1 0 0 0 Jan  5 12:34 AAAAAAAA:BBBBBBBB:CCCCCCCC X"
        assert date_from_list_item(line, now=TEST_NOW) == datetime(2024, 1, 5, 12, 34)

    def test_impossible_date(self):
        line = "-rwxrwxrwx 1 0 0 0 Feb 30 12:00 AAAAAAAA:BBBBBBBB:CCCCCCCC X"
        assert date_from_list_item(line, now=TEST_NOW) is None

    def test_no_date(self):
        assert date_from_list_item("-rwxrwxrwx AAAAAAAA:BBBBBBBB:CCCCCCCC", now=TEST_NOW) is None


class TestParseListing:
    """Tests for decoding whole listings."""

    def test_mixed_listing(self):
        lines = [
            "total 2\r\n",
            QUEUE_LINE + "\r\n",
            STORY_LINE + "\r\n",
            "",
        ]
        entries = parse_listing(lines, now=TEST_NOW)

        assert [entry.filetype for entry in entries] == [FileType.QUEUE, FileType.STORY]
        assert entries[0].file == "ARCHIVE"
        assert entries[1].story_name == "SOME STORY"

    def test_empty_listing(self):
        assert parse_listing([]) == []

    @pytest.mark.parametrize("listing", [None, "not a list", b"bytes", 42])
    def test_non_sequence_raises(self, listing):
        with pytest.raises(ProtocolDecodeError):
            parse_listing(listing)

    def test_non_string_line_raises(self):
        with pytest.raises(ProtocolDecodeError):
            parse_listing([STORY_LINE, b"binary"])
