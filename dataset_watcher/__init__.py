"""
dataset-watcher: polls a file server for sequentially numbered archives and
downloads each one as soon as it is published.
"""

__version__ = "1.0.0"
