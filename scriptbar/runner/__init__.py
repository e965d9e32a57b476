"""Process runner for plugin executables."""

from scriptbar.runner.errors import InvocationError, InvocationTimeout, LaunchFailure, NonZeroExit
from scriptbar.runner.process import ProcessRunner, RunOutput, make_executable

__all__ = [
    "InvocationError",
    "InvocationTimeout",
    "LaunchFailure",
    "NonZeroExit",
    "ProcessRunner",
    "RunOutput",
    "make_executable",
]
