"""Client-side data-access layer for the POS admin application."""

import importlib.metadata
import logging

from pos_client.auth import InMemoryTokenProvider, TokenProvider
from pos_client.client import APIClient
from pos_client.config import ClientSettings, FrozenConfig, resolve_config
from pos_client.core.exceptions import (
    ClientClosedError,
    ConfigurationError,
    InterceptorError,
    MalformedEnvelope,
    NetworkFailure,
    PosClientError,
    RateLimited,
    RequestFailed,
    Unauthorized,
    describe_error,
)
from pos_client.core.types import (
    Envelope,
    EnvelopeMeta,
    ErrorEnvelope,
    FieldError,
    PayloadClass,
    RequestDescriptor,
    RetryState,
    SuccessEnvelope,
    WarningEnvelope,
)
from pos_client.events import UNAUTHORIZED, EventBus, default_bus
from pos_client.optimistic import OptimisticUpdateManager, PendingUpdate
from pos_client.pipeline.envelope import normalize_envelope, unwrap
from pos_client.pipeline.interceptors import InterceptorPipeline
from pos_client.pipeline.request_builder import build_request, build_upload
from pos_client.pipeline.transport import RetryController, Transport
from pos_client.resources import (
    AuthAPI,
    OptimisticProducts,
    Page,
    ProductsAPI,
    SalesAPI,
)
from pos_client.telemetry import InMemoryReporter, TelemetryContext, TelemetryReporter

try:
    __version__ = importlib.metadata.version("pos-client")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Null handler so importing applications without logging config stay quiet.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [  # noqa: RUF022
    # Client
    "APIClient",
    "InterceptorPipeline",
    "Transport",
    "RetryController",
    "OptimisticUpdateManager",
    "PendingUpdate",
    "build_request",
    "build_upload",
    "normalize_envelope",
    "unwrap",
    # Credentials and events
    "TokenProvider",
    "InMemoryTokenProvider",
    "EventBus",
    "default_bus",
    "UNAUTHORIZED",
    # Configuration
    "ClientSettings",
    "FrozenConfig",
    "resolve_config",
    # Types
    "RequestDescriptor",
    "Envelope",
    "SuccessEnvelope",
    "WarningEnvelope",
    "ErrorEnvelope",
    "EnvelopeMeta",
    "FieldError",
    "RetryState",
    "PayloadClass",
    # Resources
    "AuthAPI",
    "ProductsAPI",
    "SalesAPI",
    "OptimisticProducts",
    "Page",
    # Telemetry
    "TelemetryContext",
    "TelemetryReporter",
    "InMemoryReporter",
    # Exceptions
    "PosClientError",
    "NetworkFailure",
    "Unauthorized",
    "RateLimited",
    "RequestFailed",
    "MalformedEnvelope",
    "InterceptorError",
    "ConfigurationError",
    "ClientClosedError",
    "describe_error",
]
