"""
Core business exceptions for the history server.

This module defines a hierarchy of custom exceptions to allow for granular
error handling and clear separation of failure domains.
"""


class HistoryServerError(Exception):
    """Base exception for all component-specific errors."""
    pass


# --- Configuration / Lifecycle Errors ---

class ConfigurationError(HistoryServerError):
    """Raised for errors related to application configuration."""
    pass


class LifecycleError(HistoryServerError):
    """Raised when a component is driven through an invalid state change."""
    pass


class ShutdownError(HistoryServerError):
    """Raised (and logged) when a single step of the stop sequence fails."""
    pass


# --- Infrastructure Errors ---

class InfrastructureError(HistoryServerError):
    """Base class for errors related to external systems (storage, network)."""
    pass


class StoreError(InfrastructureError):
    """Raised when a refresh location cannot be listed."""
    pass


class FetchError(InfrastructureError):
    """Raised when a single archive cannot be read from its location."""
    pass


class MirrorError(InfrastructureError, OSError):
    """Raised when the local mirror cannot be created or written."""
    pass


# --- Domain/Business Logic Errors ---

class DomainError(HistoryServerError):
    """Base class for errors related to business logic failures."""
    pass


class ArchiveFormatError(DomainError):
    """Raised when an archive payload cannot be decoded (corrupt archive)."""
    pass
