"""Exception hierarchy for elcb-bridge."""

from __future__ import annotations


class BridgeError(RuntimeError):
    """Base class for bridge failures."""


class ConfigurationError(BridgeError):
    """Raised when the configuration cannot be used to start the bridge."""


class CommandError(BridgeError):
    """Raised when a command cannot be delivered to the device."""

    reason = "command-failed"


class NotConnectedError(CommandError):
    """No transport is open to the device."""

    reason = "not-connected"


class WriteError(CommandError):
    """The transport rejected or timed out a write."""

    reason = "write-failed"
