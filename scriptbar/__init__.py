"""scriptbar: run executable plugins on a schedule and publish their output."""

__version__ = "0.1.0"
