"""
Store module.
Contains the Redis connection factory and the key schema.
"""

from kue.store.connection import close_client, create_client
from kue.store.keys import KeySchema

__all__ = [
    "create_client",
    "close_client",
    "KeySchema",
]
