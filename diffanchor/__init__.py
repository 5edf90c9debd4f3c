"""Diff-aware positioning of inline review comments for GitHub and GitLab."""

__version__ = "0.1.0"
