from django.conf import settings

from .base import BaseEscrowGateway, EscrowGatewayError
from .mock import MockEscrowGateway
from .trustless_work import TrustlessWorkGateway

def get_escrow_gateway(provider_name: str = None, **kwargs) -> BaseEscrowGateway:
    """
    Factory function to get escrow gateway instances.

    Args:
        provider_name: Name of the gateway, defaults to ``settings.ESCROW_GATEWAY['PROVIDER']``
        **kwargs: Additional configuration

    Returns:
        BaseEscrowGateway: Escrow gateway instance
    """
    providers = {
        'trustless_work': TrustlessWorkGateway,
        'mock': MockEscrowGateway,
    }

    name = provider_name or settings.ESCROW_GATEWAY['PROVIDER']
    if name not in providers:
        raise ValueError(f"Unknown escrow gateway: {name}")

    return providers[name](**kwargs)
