"""
Client module for relayed execution.

Provides an httpx-based client that hands pre-signed macro calls to a
relayer which broadcasts them on the signer's behalf.
"""

from .relayer import RelayerClient

__all__ = ["RelayerClient"]
