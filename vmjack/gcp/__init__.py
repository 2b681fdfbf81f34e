"""GCP provider implementation."""

from .provider import GCPComputeProvider

__all__ = [
    "GCPComputeProvider",
]
