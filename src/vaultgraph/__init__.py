"""vaultgraph: graph-augmented retrieval and link suggestion for note vaults."""

__version__ = "0.3.0"
