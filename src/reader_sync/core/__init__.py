"""Synchronization core: authentication, edit queue, list sync and node mapping."""

from .actions import ActionQueue, PendingAction
from .auth import Authenticator, LoginState, MAX_AUTH_FAILURES
from .credentials import CredentialStore
from .errors import (
    AuthExpired,
    AuthRejected,
    EditRejected,
    MigrationInProgress,
    NetworkFailure,
    ReaderSyncError,
)
from .nodes import FeedNode, FeedTree, NodeMapper
from .source import ReaderSource, UpdateFlags
from .sync import QUICK_UPDATE_INTERVAL, SyncEngine

__all__ = [
    "ActionQueue",
    "PendingAction",
    "Authenticator",
    "LoginState",
    "MAX_AUTH_FAILURES",
    "CredentialStore",
    "AuthExpired",
    "AuthRejected",
    "EditRejected",
    "MigrationInProgress",
    "NetworkFailure",
    "ReaderSyncError",
    "FeedNode",
    "FeedTree",
    "NodeMapper",
    "ReaderSource",
    "UpdateFlags",
    "QUICK_UPDATE_INTERVAL",
    "SyncEngine",
]
