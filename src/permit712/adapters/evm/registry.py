from typing import Dict, Optional

from ..bases import NetworkRegistry
from .constants import get_chain_config


class StaticNetworkRegistry(NetworkRegistry):
    """
    ``NetworkRegistry`` backed by the bundled chain table.

    ``extra`` adds or replaces explorer base URLs, e.g. for a private devnet.
    """

    def __init__(self, extra: Optional[Dict[int, str]] = None):
        self._extra = {chain_id: url.rstrip("/") for chain_id, url in (extra or {}).items()}

    def explorer_url_for(self, chain_id: int) -> Optional[str]:
        if chain_id in self._extra:
            return self._extra[chain_id]
        config = get_chain_config(chain_id)
        if config is None or not config.explorer_url:
            return None
        return config.explorer_url.rstrip("/")
