"""
Custom exceptions for the plugin orchestrator.

Plugin failures during analyze() become PluginOutcome entries when
continue_on_error is set; lifecycle and registry errors always surface.
"""

from typing import Any, Optional


class PluginError(Exception):
    """
    Base exception for orchestrator errors.

    Attributes:
        message: Human readable description
        plugin_id: Plugin concerned, when there is one
        details: Extra structured context for logs
    """
    def __init__(
        self,
        message: str,
        plugin_id: Optional[str] = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.plugin_id = plugin_id
        self.details = details or {}


class PluginNotFoundError(PluginError):
    """Raised when an operation names a plugin id that is not registered."""
    def __init__(self, plugin_id: str):
        super().__init__(f"Plugin {plugin_id} not found", plugin_id=plugin_id)


class NoPluginsAvailableError(PluginError):
    """Raised by analyze() when the resolved plugin set is empty."""
    def __init__(self, requested: Optional[list[str]] = None):
        super().__init__(
            "No plugins available for analysis",
            details={"requested": requested},
        )


class PluginTimeoutError(PluginError):
    """
    Raised when a plugin's analyze() does not settle within the timeout.

    The plugin task is cancelled best-effort and never awaited.
    """
    def __init__(self, plugin_id: str, timeout_ms: int):
        super().__init__(
            f"Timeout after {timeout_ms}ms",
            plugin_id=plugin_id,
            details={"timeout_ms": timeout_ms},
        )
        self.timeout_ms = timeout_ms


class LifecycleError(PluginError):
    """
    Raised when initialize() or destroy() fails.

    __cause__ holds the hook's exception. The plugin's state is unchanged.
    """
    def __init__(self, plugin_id: str, phase: str, reason: str):
        super().__init__(
            f"Plugin {plugin_id} failed to {phase}: {reason}",
            plugin_id=plugin_id,
            details={"phase": phase},
        )
        self.phase = phase
