"""
Services package for Wager Arena.

Clients for the collaborators outside the ledger core: the game service,
the payment gateway and the identity cache.
"""

from .game_client import GameServiceClient
from .payment_gateway import PaymentGateway
from .identity_cache import IdentityCache, IdentityResolver

__all__ = ['GameServiceClient', 'PaymentGateway', 'IdentityCache', 'IdentityResolver']
