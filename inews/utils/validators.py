"""Input validators for the iNews FTP client.

Provides validation functions for hosts, ports, timeouts and
queue paths.
"""

import re
from typing import Optional, Tuple


# IPv4 address pattern
IPV4_PATTERN = re.compile(
    r'^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}'
    r'(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$'
)

# Hostname pattern (simplified)
HOSTNAME_PATTERN = re.compile(
    r'^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*$'
)

# iNews queue paths are dot separated: SHOW.RUNDOWN.TODAY
QUEUE_PATH_PATTERN = re.compile(r'^[A-Za-z0-9_-]+(\.[A-Za-z0-9_-]+)*$')


def validate_host(host: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a host (IPv4 address or hostname).

    Args:
        host: Host string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not host or not host.strip():
        return False, "Host is required"

    host = host.strip()

    if IPV4_PATTERN.match(host) or HOSTNAME_PATTERN.match(host):
        return True, None

    return False, f"Invalid host: {host}. Must be a valid IP address or hostname."


def validate_port(port: int) -> Tuple[bool, Optional[str]]:
    """
    Validate a port number.

    Args:
        port: Port number to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(port, int):
        try:
            port = int(port)
        except (ValueError, TypeError):
            return False, "Port must be a number"

    if port < 1 or port > 65535:
        return False, f"Port must be between 1 and 65535, got {port}"

    return True, None


def validate_timeout(timeout: float, name: str = "Timeout") -> Tuple[bool, Optional[str]]:
    """
    Validate a timeout or delay in seconds.

    Zero is allowed (no delay); negative values are not.

    Args:
        timeout: Value in seconds
        name: Label used in the error message

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        timeout = float(timeout)
    except (ValueError, TypeError):
        return False, f"{name} must be a number"

    if timeout < 0:
        return False, f"{name} must not be negative, got {timeout:g}"

    return True, None


def validate_count(value: Optional[int], name: str, allow_unbounded: bool = False) -> Tuple[bool, Optional[str]]:
    """
    Validate a positive count such as a number of attempts.

    Args:
        value: Count to validate
        name: Label used in the error message
        allow_unbounded: Accept None as "no limit"

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None:
        if allow_unbounded:
            return True, None
        return False, f"{name} is required"

    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be an integer"

    if value < 1:
        return False, f"{name} must be at least 1, got {value}"

    return True, None


def validate_queue_path(path: str) -> Tuple[bool, Optional[str]]:
    """
    Validate an iNews queue path.

    Args:
        path: Queue path such as "SHOW.RUNDOWN"

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not path or not path.strip():
        return False, "Queue path is required"

    if not QUEUE_PATH_PATTERN.match(path.strip()):
        return False, f"Invalid queue path: {path}"

    return True, None
