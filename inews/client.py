"""iNews FTP client.

INewsClient composes the session manager, the operation scheduler and
the decoders into the public read operations: list a queue, fetch a
story as NSML, fetch and decode a story.
"""

import logging
from typing import Callable, List, Optional

from inews.config.settings import ClientConfig
from inews.ftp.connection import ConnectionState, SessionManager, StatusEvent
from inews.ftp.exceptions import ProtocolDecodeError
from inews.ftp.listing import (
    STORY_FILE_PATTERN,
    DirectoryEntry,
    parse_listing,
    story_identifier_from_filename,
    story_locator_from_filename,
)
from inews.ftp.scheduler import JobController, OperationJob, OperationKind, OperationScheduler
from inews.ftp.transport import FTPTransport, Transport
from inews.story.models import Story
from inews.story.parser import parse_story

logger = logging.getLogger("inews.client")


class INewsClient:
    """
    Read-only client for an iNews FTP server.

    Usage:
        config = ClientConfig(hosts=["inews-a", "inews-b"], user="news", password="...")
        with INewsClient(config) as client:
            for entry in client.list_queue("SHOW.RUNDOWN"):
                ...
            story = client.story("SHOW.RUNDOWN", entry.file)
    """

    def __init__(self, config: ClientConfig, transport: Optional[Transport] = None):
        """
        Initialize the client. No connection is made until it is needed.

        Args:
            config: Client configuration
            transport: Transport to use instead of an FTPTransport built
                from the configuration
        """
        self._config = config
        if transport is None:
            transport = FTPTransport(
                port=config.port,
                timeout=config.connect_timeout,
                passive_mode=config.passive_mode,
            )
        self._session = SessionManager(config, transport)
        self._scheduler = OperationScheduler(
            max_operations=config.max_operations,
            max_attempts=config.max_operation_attempts,
            timeout=config.timeout,
            on_error=self._should_retry,
        )

    @property
    def config(self) -> ClientConfig:
        """Client configuration."""
        return self._config

    @property
    def session(self) -> SessionManager:
        """The session manager owning the transport."""
        return self._session

    @property
    def scheduler(self) -> OperationScheduler:
        """The scheduler running list and fetch operations."""
        return self._scheduler

    @property
    def status(self) -> ConnectionState:
        """Current connection state."""
        return self._session.state

    @property
    def current_host(self) -> Optional[str]:
        """Host of the current or most recent connection attempt."""
        return self._session.current_host

    @property
    def queue_length(self) -> int:
        """Number of operations waiting to start."""
        return self._scheduler.queue_length

    def subscribe(self, listener: Callable[[StatusEvent], None]) -> Callable[[], None]:
        """Register a status listener; returns a callable that removes it."""
        return self._session.subscribe(listener)

    def connect(self) -> Transport:
        """Connect now instead of on first use; returns the live transport."""
        return self._session.connect()

    def disconnect(self) -> bool:
        """Close the connection. Operations still queued will reconnect."""
        return self._session.disconnect()

    def close(self) -> None:
        """Cancel queued operations and disconnect."""
        cancelled = self._scheduler.cancel_pending()
        if cancelled:
            logger.info(f"Cancelled {cancelled} queued operations")
        self._session.disconnect()

    def __enter__(self) -> "INewsClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def submit_list(self, directory: str) -> JobController[List[DirectoryEntry]]:
        """
        Schedule a listing of a queue.

        Args:
            directory: Queue path, e.g. "SHOW.RUNDOWN"

        Returns:
            JobController resolving to the queue's entries
        """
        def operation() -> List[DirectoryEntry]:
            self._session.connect()
            self._session.change_directory(directory)
            return parse_listing(self._session.transport.list())

        return self._scheduler.enqueue(operation, directory, kind=OperationKind.LIST)

    def submit_story_nsml(self, directory: str, file: str) -> JobController[str]:
        """
        Schedule fetching a story's NSML.

        Args:
            directory: Queue path
            file: Story filename (IDENTIFIER:LOCATOR:LOCATOR)

        Returns:
            JobController resolving to the raw NSML text
        """
        def operation() -> str:
            self._session.connect()
            self._session.change_directory(directory)
            return self._session.transport.get(file)

        return self._scheduler.enqueue(operation, directory, kind=OperationKind.FETCH, file=file)

    def list_queue(self, directory: str) -> List[DirectoryEntry]:
        """List a queue, waiting for the result."""
        return self.submit_list(directory).result()

    def story_nsml(self, directory: str, file: str) -> str:
        """Fetch a story's raw NSML, waiting for the result."""
        return self.submit_story_nsml(directory, file).result()

    def story(self, directory: str, file: str) -> Story:
        """
        Fetch and decode a story.

        Raises:
            ExhaustedRetriesError: If the fetch failed on every attempt
            ProtocolDecodeError: If the NSML cannot be decoded
        """
        story = parse_story(self.story_nsml(directory, file))
        if STORY_FILE_PATTERN.fullmatch(file):
            story.identifier = story_identifier_from_filename(file)
            story.locator = story_locator_from_filename(file)
        return story

    def _should_retry(self, error: Exception, job: OperationJob) -> bool:
        """Retry unless the failure cannot improve or the caller hung up."""
        if isinstance(error, ProtocolDecodeError):
            return False
        if self._session.closed_by_caller:
            logger.info(f"Not retrying {job.describe()}: session was disconnected")
            return False
        return True
