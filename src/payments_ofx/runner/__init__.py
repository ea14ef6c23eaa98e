"""
CLI runner module.

Provides commands:
- report: Generate an OFX statement for a provider
- reset-token: Forget a cached access token
- init-config: Write a default config file
- history: List generated reports
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
