"""Utility module for the iNews FTP client.

This module provides cross-cutting utilities:
- Logging: Configured logging with PII redaction
- Validators: Input validation for hosts, ports, counts and queue paths
- Threading: Background task helpers with deadlines
- Events: Status listener channel
"""
