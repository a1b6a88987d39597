from __future__ import annotations


class DashboardError(Exception):
    """Base class for errors surfaced to API callers."""


class ConfigurationError(DashboardError):
    pass


class UpstreamError(DashboardError):
    pass


class QueryValidationError(DashboardError):
    pass


class TabNotFoundError(DashboardError):
    pass
