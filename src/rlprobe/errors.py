from __future__ import annotations


class RlprobeError(Exception):
    """Base class for fatal harness errors."""


class ConfigError(RlprobeError, ValueError):
    """Invalid run or scenario configuration, reported before any traffic is sent."""


class TargetUnreachableError(RlprobeError):
    """The target endpoint did not answer the startup preflight request."""
