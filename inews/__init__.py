"""iNews FTP client.

Lists iNews queues and fetches NSML stories over FTP.
"""

__version__ = "1.0.0"
