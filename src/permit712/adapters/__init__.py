from .bases import ChainReader, Signer, Writer, NetworkRegistry, Relayer

__all__ = [
    "ChainReader",
    "Signer",
    "Writer",
    "NetworkRegistry",
    "Relayer",
]
