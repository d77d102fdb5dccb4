"""Exception types raised across the ArchFlow workflow."""

from __future__ import annotations


class ArchFlowError(Exception):
    """Base class for every error raised by the package."""


class ConfigError(ArchFlowError, ValueError):
    """The workflow configuration text could not be parsed or validated."""


class GatewayError(ArchFlowError, RuntimeError):
    """A call to the remote generation service failed or returned garbage."""


class CredentialError(GatewayError):
    """No usable API key is available for live generation calls."""


class VideoTimeoutError(GatewayError, TimeoutError):
    """A long-running video job did not finish within the allowed wait."""


class WorkflowError(ArchFlowError, RuntimeError):
    """An advance operation was attempted from the wrong step."""
