"""Pytest configuration and shared fixtures for iNews FTP client tests."""

import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

import pytest

from inews.ftp.exceptions import NotConnectedError, TransportConnectionError


# Test constants
TEST_FTP_HOST = "127.0.0.1"
TEST_FTP_PORT = 2121
TEST_FTP_USER = "testuser"
TEST_FTP_PASS = "testpass"

# Reference time for listing date inference
TEST_NOW = datetime(2024, 6, 15, 9, 0)

STORY_FILE = "AAAAAAAA:BBBBBBBB:CCCCCCCC"

SAMPLE_NSML = """<nsml version="-//AVID//DTD NSML 1.0//EN">
<head>
<meta words=42 rate=180 float>
<storyid>0a1b2c3d</storyid>
</head>
<fields>
<f id=title>LEAD STORY</f>
<f id=modify-date>1718441640</f>
<f id=page-number urgency=2>A01</f>
<f id=video-id uec>V&amp;1</f>
</fields>
<body>
<p>Good evening &amp; welcome.</p>
</body>
<aeset>
<ae id=0>
<ap>]] S3.0 G 0 [[</ap>
<ap>SOT: Mayor</ap>
</ae>
</aeset>
</nsml>
"""


class FakeTransport:
    """
    In-memory stand-in for FTPTransport.

    Failures are scripted per host; every call is recorded.
    """

    def __init__(self, listings: Optional[Dict[str, List[str]]] = None, files: Optional[Dict[str, str]] = None):
        self.listings = listings or {}
        self.files = files or {}
        self.fail_hosts: Dict[str, Exception] = {}
        self.site_error: Optional[Exception] = None
        self.connect_gate: Optional[threading.Event] = None
        self.before_get: Optional[Callable[[str], None]] = None

        self.calls: List[tuple] = []
        self.connect_count = 0
        self.directory: Optional[str] = None
        self._connected = False
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self, host: str, user: str, password: str) -> None:
        with self._lock:
            self.connect_count += 1
            self.calls.append(("connect", host, user))
        if self.connect_gate is not None:
            self.connect_gate.wait(5)
        if host in self.fail_hosts:
            raise self.fail_hosts[host]
        self._connected = True

    def site(self, command: str) -> str:
        self.calls.append(("site", command))
        if self.site_error is not None:
            raise self.site_error
        return "200 OK"

    def cwd(self, path: str) -> str:
        self._require()
        self.calls.append(("cwd", path))
        self.directory = path
        return path

    def list(self) -> List[str]:
        self._require()
        self.calls.append(("list", self.directory))
        return list(self.listings.get(self.directory, []))

    def get(self, filename: str) -> str:
        self._require()
        self.calls.append(("get", self.directory, filename))
        if self.before_get is not None:
            self.before_get(filename)
        return self.files[filename]

    def end(self) -> None:
        self.calls.append(("end",))
        self._connected = False

    def drop(self) -> None:
        """Simulate the server closing the control connection."""
        self._connected = False

    def _require(self) -> None:
        if not self._connected:
            raise NotConnectedError("Transport access")


def refused(host: str) -> TransportConnectionError:
    """Connection error as the transport raises it for a dead host."""
    return TransportConnectionError(host, 21, ConnectionRefusedError("Connection refused"))


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Provide a fake transport with one queue and one story."""
    return FakeTransport(
        listings={
            "SHOW.RUNDOWN": [
                "d--------- 1 news news 0 Jun 14 08:00 ARCHIVE",
                f"-rwxrwxrwx 1 0 0 0 Jun 5 12:34 {STORY_FILE} LEAD STORY",
            ],
        },
        files={STORY_FILE: SAMPLE_NSML},
    )


@pytest.fixture
def temp_settings_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary settings file path for testing."""
    settings_file = tmp_path / "settings.json"
    yield settings_file
    # Cleanup handled by tmp_path fixture
