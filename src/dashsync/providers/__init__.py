"""Remote resource providers module."""

from dashsync.providers.resource_client import ResourceClient
from dashsync.providers.http_client import HttpResourceClient

__all__ = [
    "ResourceClient",
    "HttpResourceClient",
]
