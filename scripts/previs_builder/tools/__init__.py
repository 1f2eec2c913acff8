"""
Invokers for the external tools: the Creation Kit, xEdit and the archivers.
"""

from .archive import ArchiveBackend, ArchiveManager, Archive2Backend, BSArchBackend, archive_qualifiers, create_backend
from .base import InvocationResult, RunLog
from .creation_kit import CreationKitRunner, DisabledComponents
from .log_classifier import LogClassifier, LogOutcome, LogVerdict, MarkerClassifier
from .xedit import XEditRunner

__all__ = [
    "ArchiveBackend",
    "ArchiveManager",
    "Archive2Backend",
    "BSArchBackend",
    "archive_qualifiers",
    "create_backend",
    "InvocationResult",
    "RunLog",
    "CreationKitRunner",
    "DisabledComponents",
    "LogClassifier",
    "LogOutcome",
    "LogVerdict",
    "MarkerClassifier",
    "XEditRunner",
]
