"""Provider implementations of the ProviderClient capability."""

from cloudkeeper.providers.base import ProviderClient
from cloudkeeper.providers.memory import InMemoryProvider, ProviderCall

__all__ = [
    "ProviderClient",
    "InMemoryProvider",
    "ProviderCall",
]
