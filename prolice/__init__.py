"""PRolice: pull-request quality scoring for GitHub repositories."""

__version__ = "0.1.0"
