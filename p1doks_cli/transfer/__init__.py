"""
Transfer Layer.

This package downloads setup files from signed URLs.
"""

from .downloader import FileDownloader, close_connection_pool

__all__ = ["FileDownloader", "close_connection_pool"]
