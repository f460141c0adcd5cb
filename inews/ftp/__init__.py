"""FTP layer for the iNews FTP client.

This module handles all FTP-related functionality:
- Transport: ftplib-backed command channel
- SessionManager: Connection management with host failover and status events
- OperationScheduler: Bounded, retried list/fetch operations
- Listing: Decoding of iNews directory listings
- Exceptions: Client error types
"""
