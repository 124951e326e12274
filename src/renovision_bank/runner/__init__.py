"""
CLI runner module.

Provides commands:
- init-config / check: Configuration and provider reachability
- connect-url / authorize: Link a bank connection
- sync: Run sync passes for one or all connections
- disconnect / connections: Manage linked connections
- transactions / convert / ignore / stats: Review synchronized transactions
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
