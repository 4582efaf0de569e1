from .base_provider import (
    PaymentProvider,
    RevenueDataPoint,
    RevenueMetrics,
    ValidationResult,
    ProviderError,
    UnsupportedProviderError,
)
from .providers import create_provider, get_supported_providers
from .standalone_client import StandaloneClient, StandaloneAPIError, SignatureVerificationError
from .aggregator import DataAggregator, SyncResult, SyncError

__all__ = [
    "PaymentProvider",
    "RevenueDataPoint",
    "RevenueMetrics",
    "ValidationResult",
    "ProviderError",
    "UnsupportedProviderError",
    "create_provider",
    "get_supported_providers",
    "StandaloneClient",
    "StandaloneAPIError",
    "SignatureVerificationError",
    "DataAggregator",
    "SyncResult",
    "SyncError",
]
