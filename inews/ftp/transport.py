"""FTP transport for the iNews client.

Provides the Transport protocol the session manager talks to and
FTPTransport, an ftplib-backed implementation exposing only the
primitives the client needs: connect, site, cwd, list, get and end.
"""

import codecs
import logging
import socket
import threading
from ftplib import FTP, Error as FTPLibError, error_perm
from typing import List, Optional, Protocol

from inews.ftp.exceptions import (
    AuthenticationError,
    NotConnectedError,
    OperationTimeoutError,
    TransportConnectionError,
    TransportError,
)

logger = logging.getLogger("inews.transport")


class Transport(Protocol):
    """Primitives of the control channel used by the session manager."""

    @property
    def connected(self) -> bool:
        """True while the control connection is open."""
        ...

    def connect(self, host: str, user: str, password: str) -> None:
        """Open and authenticate the control connection."""
        ...

    def site(self, command: str) -> str:
        """Send a SITE command, returning the server reply."""
        ...

    def cwd(self, path: str) -> str:
        """Change directory, returning the resolved path."""
        ...

    def list(self) -> List[str]:
        """Return the raw listing lines of the current directory."""
        ...

    def get(self, filename: str) -> str:
        """Fetch a file from the current directory as text."""
        ...

    def end(self) -> None:
        """Close the control connection."""
        ...


class FTPTransport:
    """
    Transport backed by ftplib.

    ftplib is not thread-safe, so every primitive holds a lock for the
    duration of its command; concurrent callers are served one command
    at a time over the single control channel.
    """

    def __init__(
        self,
        port: int = 21,
        timeout: float = 30.0,
        passive_mode: bool = True,
        encoding: str = "utf-8"
    ):
        """
        Initialize the transport.

        Args:
            port: FTP control port
            timeout: Socket timeout in seconds for connect and data transfers
            passive_mode: Use passive data connections
            encoding: Text encoding of listings and story files
        """
        self._port = port
        self._timeout = timeout
        self._passive_mode = passive_mode
        self._encoding = encoding
        self._ftp: Optional[FTP] = None
        self._host: Optional[str] = None
        self._lock = threading.RLock()

    @property
    def connected(self) -> bool:
        """True while the control connection is open."""
        return self._ftp is not None and self._ftp.sock is not None

    @property
    def host(self) -> Optional[str]:
        """Host of the current (or last) connection."""
        return self._host

    @property
    def ftp(self) -> FTP:
        """
        Get the underlying FTP object.

        Raises:
            NotConnectedError: If not connected
        """
        if not self.connected:
            raise NotConnectedError("FTP access")
        return self._ftp

    def connect(self, host: str, user: str, password: str) -> None:
        """
        Open and authenticate the control connection.

        Raises:
            TransportConnectionError: If the connection cannot be opened
            AuthenticationError: If login fails
            OperationTimeoutError: If the connection times out
        """
        with self._lock:
            self._drop()
            self._host = host

            ftp = FTP()
            ftp.encoding = self._encoding
            ftp.set_debuglevel(0)

            try:
                ftp.connect(host=host, port=self._port, timeout=self._timeout)
            except socket.timeout as e:
                raise OperationTimeoutError(f"Connection to {host}", self._timeout, e)
            except (OSError, EOFError, FTPLibError) as e:
                raise TransportConnectionError(host, self._port, e)

            try:
                ftp.login(user=user, passwd=password)
            except error_perm as e:
                self._close_quietly(ftp)
                raise AuthenticationError(user, e)
            except socket.timeout as e:
                self._close_quietly(ftp)
                raise OperationTimeoutError(f"Login to {host}", self._timeout, e)
            except (OSError, EOFError, FTPLibError) as e:
                self._close_quietly(ftp)
                raise TransportConnectionError(host, self._port, e)

            ftp.set_pasv(self._passive_mode)
            self._ftp = ftp
            logger.debug(f"Control connection open to {host}:{self._port}")

    def site(self, command: str) -> str:
        """Send a SITE command, returning the server reply."""
        with self._lock:
            return self._run("send SITE", command, lambda ftp: ftp.sendcmd(f"SITE {command}"))

    def cwd(self, path: str) -> str:
        """Change directory, returning the resolved path."""
        with self._lock:
            self._run("change directory to", path, lambda ftp: ftp.cwd(path))
            return path

    def list(self) -> List[str]:
        """Return the raw listing lines of the current directory."""
        lines: List[str] = []
        with self._lock:
            self._run("list", "", lambda ftp: ftp.retrlines("LIST", lines.append))
        return lines

    def get(self, filename: str) -> str:
        """
        Fetch a file from the current directory as text.

        Data chunks are decoded incrementally so multi-byte characters
        split across chunk boundaries survive; the text is complete once
        the data connection closes.
        """
        decoder = codecs.getincrementaldecoder(self._encoding)(errors="replace")
        chunks: List[str] = []

        def on_data(block: bytes) -> None:
            chunks.append(decoder.decode(block))

        with self._lock:
            self._run("retrieve", filename, lambda ftp: ftp.retrbinary(f"RETR {filename}", on_data))
        chunks.append(decoder.decode(b"", final=True))
        return "".join(chunks)

    def end(self) -> None:
        """Close the control connection gracefully."""
        with self._lock:
            ftp = self._ftp
            self._ftp = None
            if ftp is not None:
                try:
                    ftp.quit()
                except (OSError, EOFError, FTPLibError):
                    # Best effort close
                    self._close_quietly(ftp)

    def _run(self, operation: str, target: str, command):
        """Run an ftplib call, translating its errors."""
        ftp = self.ftp
        try:
            return command(ftp)
        except socket.timeout as e:
            self._drop()
            raise OperationTimeoutError(f"{operation} {target}".strip(), self._timeout, e)
        except (OSError, EOFError) as e:
            # Control channel is gone
            self._drop()
            raise TransportError(operation, target, e)
        except FTPLibError as e:
            raise TransportError(operation, target, e)

    def _drop(self) -> None:
        """Forget the current connection without talking to the server."""
        if self._ftp is not None:
            self._close_quietly(self._ftp)
            self._ftp = None

    @staticmethod
    def _close_quietly(ftp: FTP) -> None:
        try:
            ftp.close()
        except OSError:
            pass
