"""Shared utilities for the voter registration service."""

# Errors
from utils.errors import (
    RegistrationError,
    ValidationError,
    RemoteError,
    DuplicateError,
    StorageError,
    SubmissionError,
)

# HTTP utilities
from utils.http import (
    RetryPolicy,
    RetryStrategy,
    SessionManager,
)

# Caching
from utils.cache import TTLCache

# Configuration
from utils.config import (
    Config,
    AppConfig,
    KnownValues,
)

# Table filtering and pagination
from utils.filters import (
    FilterState,
    Page,
    TableView,
    apply_filters,
    paginate,
    page_window,
    sort_first_come_first_served,
)

# Chart aggregation
from utils.aggregation import ChartAggregate, aggregate

__all__ = [
    # Errors
    "RegistrationError",
    "ValidationError",
    "RemoteError",
    "DuplicateError",
    "StorageError",
    "SubmissionError",
    # HTTP
    "RetryPolicy",
    "RetryStrategy",
    "SessionManager",
    # Cache
    "TTLCache",
    # Config
    "Config",
    "AppConfig",
    "KnownValues",
    # Filters
    "FilterState",
    "Page",
    "TableView",
    "apply_filters",
    "paginate",
    "page_window",
    "sort_first_come_first_served",
    # Aggregation
    "ChartAggregate",
    "aggregate",
]
