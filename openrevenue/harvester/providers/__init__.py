"""
Payment provider registry.

create_provider("stripe", api_key=...) returns a ready adapter; ids the
platform knows about but has no adapter for raise UnsupportedProviderError.
"""

from typing import Dict, Optional, Type

from ..base_provider import PaymentProvider, UnsupportedProviderError
from .polar import PolarProvider
from .stripe import StripeProvider

PROVIDER_REGISTRY: Dict[str, Type[PaymentProvider]] = {
    "stripe": StripeProvider,
    "polar": PolarProvider,
}

PLANNED_PROVIDERS = {
    "paddle": "Paddle",
    "lemon_squeezy": "Lemon Squeezy",
    "paypal": "PayPal",
}


def create_provider(
    provider: str,
    api_key: str,
    api_secret: Optional[str] = None,
    **kwargs,
) -> PaymentProvider:
    """Instantiate the adapter registered for a provider id."""
    provider_class = PROVIDER_REGISTRY.get(provider)
    if provider_class is None:
        if provider in PLANNED_PROVIDERS:
            raise UnsupportedProviderError(f"{PLANNED_PROVIDERS[provider]} provider not yet implemented")
        raise UnsupportedProviderError(f"Unsupported payment provider: {provider}")
    return provider_class(api_key, api_secret, **kwargs)


def get_supported_providers() -> list[str]:
    return sorted(PROVIDER_REGISTRY)


__all__ = [
    "PROVIDER_REGISTRY",
    "StripeProvider",
    "PolarProvider",
    "create_provider",
    "get_supported_providers",
]
