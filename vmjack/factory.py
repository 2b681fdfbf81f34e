"""Universal provider factory.

Provides :func:`universal_factory`, the single entry-point for getting a
:class:`~vmjack.servers.Servers` collection.  The function validates the
raw config for ``cloud_provider``, builds the provider client and binds
the config's polling policy to the collection.
"""

from vmjack.base.config import validate_config
from vmjack.base.provider import ComputeProviderBlueprint
from vmjack.base.supported_providers import existing_cloud_providers
from vmjack.gcp import GCPComputeProvider
from vmjack.servers import Servers


# Provider registry: cloud_provider -> provider class
_PROVIDER_REGISTRY: dict[str, type[ComputeProviderBlueprint]] = {
    "gcp": GCPComputeProvider,
}


def universal_factory(cloud_provider: existing_cloud_providers, config: dict) -> Servers:
    """
    Create a server collection for a cloud provider.
    Args:
        cloud_provider: The cloud provider (e.g., 'gcp').
        config: Configuration dictionary for the provider.
    Returns:
        A :class:`Servers` collection bound to the provider.
    Raises:
        ValueError: If the cloud provider is not supported.
        pydantic.ValidationError: If the config is invalid.
    """
    if cloud_provider not in _PROVIDER_REGISTRY:
        raise ValueError(f"Unsupported cloud provider: {cloud_provider}")

    provider_class = _PROVIDER_REGISTRY[cloud_provider]
    config_obj = validate_config(cloud_provider, config)
    return Servers(provider_class(config_obj), polling=config_obj.polling)
