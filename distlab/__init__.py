"""Message codec, simulated in-process RPC network and linearizability checker for distributed-systems work."""

__version__ = "0.1.0"