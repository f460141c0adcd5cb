"""Session management for the iNews FTP client.

Provides the ConnectionState enum, StatusEvent, and SessionManager,
which owns the shared transport: it connects on demand, cycles through
the configured hosts on failure and makes sure only one connection
attempt is ever in flight.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from inews.config.settings import ClientConfig
from inews.ftp.exceptions import ConnectionCancelledError, INewsError, NotConnectedError, TransportError
from inews.ftp.transport import Transport
from inews.utils.events import StatusChannel

logger = logging.getLogger("inews.connection")


class ConnectionState(Enum):
    """Session connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class StatusEvent:
    """Published on every connection state transition."""
    state: ConnectionState
    host: Optional[str]
    error: Optional[BaseException] = None

    @property
    def name(self) -> str:
        """State name, e.g. "connected"."""
        return self.state.value


class SessionManager:
    """Manages the connection lifecycle of one shared transport."""

    def __init__(self, config: ClientConfig, transport: Transport):
        """
        Initialize the session manager.

        Args:
            config: Client configuration (hosts, credentials, reconnect policy)
            transport: Transport shared by every operation of the client
        """
        self._config = config
        self._transport = transport
        self._state = ConnectionState.DISCONNECTED
        self._current_host: Optional[str] = None
        self._current_directory: Optional[str] = None
        self._reconnect_counter = 0
        self._connected_at: Optional[datetime] = None
        self._closed_by_caller = False

        # Single-flight connect: None, or the Future of the attempt in progress
        self._lock = threading.RLock()
        self._attempt: Optional[Future] = None
        self._cancel = threading.Event()

        self._status = StatusChannel()

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """True if connected and the transport is still open."""
        return self._state == ConnectionState.CONNECTED and self._transport.connected

    @property
    def current_host(self) -> Optional[str]:
        """Host of the current or most recent connection attempt."""
        return self._current_host

    @property
    def current_directory(self) -> Optional[str]:
        """Directory the transport is in, if known."""
        return self._current_directory

    @property
    def reconnect_counter(self) -> int:
        """Number of failed connection attempts; selects the next host."""
        return self._reconnect_counter

    @property
    def connected_at(self) -> Optional[datetime]:
        """Timestamp when the current connection was established."""
        return self._connected_at

    @property
    def closed_by_caller(self) -> bool:
        """True after disconnect() until the next successful connection."""
        return self._closed_by_caller

    @property
    def status(self) -> StatusChannel:
        """Channel publishing a StatusEvent on every state transition."""
        return self._status

    @property
    def transport(self) -> Transport:
        """
        Get the connected transport.

        Raises:
            NotConnectedError: If not connected
        """
        if not self.is_connected:
            raise NotConnectedError("Transport access")
        return self._transport

    def subscribe(self, listener: Callable[[StatusEvent], None]) -> Callable[[], None]:
        """Register a status listener; returns a callable that removes it."""
        return self._status.subscribe(listener)

    def connect(self) -> Transport:
        """
        Return a live transport, connecting first if needed.

        Concurrent callers share one connection attempt and all receive
        its outcome.

        Returns:
            The connected transport

        Raises:
            TransportError: If every allowed attempt failed
            OperationTimeoutError: If the last attempt timed out
        """
        with self._lock:
            if self._attempt is not None:
                attempt = self._attempt
                owner = False
            elif self.is_connected:
                return self._transport
            else:
                if self._state == ConnectionState.CONNECTED:
                    # Transport closed underneath us
                    logger.info(f"Connection to {self._current_host} was lost")
                    self._current_directory = None
                    self._set_state(ConnectionState.DISCONNECTED)
                attempt = Future()
                self._attempt = attempt
                self._cancel.clear()
                owner = True

        if owner:
            self._run_attempts(attempt)

        return attempt.result()

    def disconnect(self) -> bool:
        """
        Close the transport.

        Cancels a pending reconnect wait. Returns once the transport is
        closed, immediately if it already was.

        Returns:
            True
        """
        with self._lock:
            self._cancel.set()
            self._closed_by_caller = True
            self._current_directory = None

            if self._transport.connected:
                logger.info(f"Disconnecting from {self._current_host}")
                self._transport.end()

            self._connected_at = None
            self._set_state(ConnectionState.DISCONNECTED)
        return True

    def change_directory(self, path: str) -> str:
        """
        Change the transport's directory unless it is already there.

        Args:
            path: Queue path

        Returns:
            The resolved directory

        Raises:
            NotConnectedError: If not connected
            TransportError: If the server refuses the directory
        """
        if self._current_directory == path:
            return path

        resolved = self.transport.cwd(path)
        self._current_directory = resolved
        return resolved

    def _run_attempts(self, attempt: Future) -> None:
        """Connect with the configured reconnect policy and resolve the shared attempt."""
        max_attempts = self._config.max_reconnect_attempts
        attempts = 0
        transport: Optional[Transport] = None
        error: Optional[BaseException] = None

        while True:
            attempts += 1
            try:
                transport = self._attempt_once()
                error = None
                break
            except ConnectionCancelledError as e:
                error = e
                break
            except INewsError as e:
                error = e
            except Exception as e:
                error = TransportError("connect to", self._current_host or "", e)

            self._reconnect_counter += 1
            self._current_directory = None
            logger.warning(f"Connection attempt {attempts} to {self._current_host} failed: {error}")
            self._set_state(ConnectionState.ERROR, error)

            if max_attempts is not None and attempts >= max_attempts:
                break
            if self._cancel.wait(self._config.reconnect_delay):
                logger.info("Reconnect cancelled by disconnect")
                break

        with self._lock:
            self._attempt = None

        if error is not None:
            attempt.set_exception(error)
        else:
            attempt.set_result(transport)

    def _attempt_once(self) -> Transport:
        """Dial the next host and run the post-connect handshakes."""
        hosts: List[str] = self._config.hosts
        self._current_host = hosts[self._reconnect_counter % len(hosts)]
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"Connecting to {self._current_host}")

        self._transport.connect(self._current_host, self._config.user, self._config.password)

        self._current_directory = None
        self._negotiate()

        with self._lock:
            if self._cancel.is_set():
                # disconnect() ran while the dial was in flight
                logger.info(f"Connection to {self._current_host} cancelled by disconnect")
                self._transport.end()
                self._set_state(ConnectionState.DISCONNECTED)
                raise ConnectionCancelledError(self._current_host or "")

            self._connected_at = datetime.now()
            self._closed_by_caller = False
            self._set_state(ConnectionState.CONNECTED)
        return self._transport

    def _negotiate(self) -> None:
        """Send the SITE handshakes; a server that rejects them is still usable."""
        for command in self._config.site_commands:
            try:
                self._transport.site(command)
            except INewsError as e:
                logger.debug(f"SITE {command} rejected by {self._current_host}: {e}")

    def _set_state(self, state: ConnectionState, error: Optional[BaseException] = None) -> None:
        """Update the state and publish the transition."""
        if self._state == state:
            return
        self._state = state
        self._status.publish(StatusEvent(state=state, host=self._current_host, error=error))
