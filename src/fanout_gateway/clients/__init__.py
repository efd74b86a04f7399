"""
External service clients for the fan-out gateway.
"""

from .postgres_client import PostgresClient

__all__ = [
    'PostgresClient',
]
