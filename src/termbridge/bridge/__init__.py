"""The PTY session bridge.

Parser, registry, router, lifecycle manager, resize coordinator and input
classifier, plus the per-pane ``Terminal`` that wires them to a surface.
"""

from termbridge.bridge.errors import (
    BackendUnavailable,
    BridgeError,
    OverflowDrop,
    RespawnFailure,
    SpawnFailure,
    UnknownSessionEvent,
    WriteFailure,
)
from termbridge.bridge.input import InputClassifier, KeyDecision, KeyPress
from termbridge.bridge.lifecycle import Backend, LifecycleManager
from termbridge.bridge.registry import Session, SessionRegistry, SessionState
from termbridge.bridge.resize import ResizeCoordinator
from termbridge.bridge.router import EventRouter, Subscription
from termbridge.bridge.surface import DisplaySurface, ScreenSurface
from termbridge.bridge.terminal import Terminal, TerminalState

__all__ = [
    "Backend",
    "BackendUnavailable",
    "BridgeError",
    "DisplaySurface",
    "EventRouter",
    "InputClassifier",
    "KeyDecision",
    "KeyPress",
    "LifecycleManager",
    "OverflowDrop",
    "ResizeCoordinator",
    "RespawnFailure",
    "ScreenSurface",
    "Session",
    "SessionRegistry",
    "SessionState",
    "SpawnFailure",
    "Subscription",
    "Terminal",
    "TerminalState",
    "UnknownSessionEvent",
    "WriteFailure",
]
