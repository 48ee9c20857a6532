"""
Order store repositories.
"""
from .base_repository import BaseRepository, OrderChange, OrderChangeStream, OrderChangeType
from .order_repository import FirestoreOrderRepository

__all__ = [
    'BaseRepository',
    'OrderChange',
    'OrderChangeStream',
    'OrderChangeType',
    'FirestoreOrderRepository',
]
