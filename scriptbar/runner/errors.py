"""Invocation error types raised by the process runner."""

from __future__ import annotations


class InvocationError(Exception):
    """
    A plugin script could not produce output.

    Attributes:
        message: Human-readable description shown next to the plugin.
        raw_stderr: Whatever the process wrote to stderr, if it ran at all.
    """

    def __init__(self, message: str, raw_stderr: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.raw_stderr = raw_stderr


class LaunchFailure(InvocationError):
    """The executable is missing, not permitted, or the shell could not start."""


class NonZeroExit(InvocationError):
    """The process ran and exited with a non-zero status."""

    def __init__(self, message: str, raw_stderr: str = "", exit_status: int = 1) -> None:
        super().__init__(message, raw_stderr)
        self.exit_status = exit_status


class InvocationTimeout(InvocationError):
    """The process outlived the configured runner timeout and was killed."""
