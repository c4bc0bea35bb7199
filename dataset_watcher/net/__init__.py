"""
Network Layer.

This package handles all HTTP traffic with the remote file server: lightweight
existence probes and the streaming download of published archives.
"""

from .downloader import DownloadRequester
from .prober import ExistenceProber

__all__ = ["DownloadRequester", "ExistenceProber"]
