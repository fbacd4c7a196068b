"""CA store: on-disk layout, store lock, serial counter and ledger."""

from smimeca.store.layout import StoreLayout, initialize_store
from smimeca.store.ledger import Ledger
from smimeca.store.lock import StoreLock
from smimeca.store.serial import SerialAllocator

__all__ = [
    "Ledger",
    "SerialAllocator",
    "StoreLayout",
    "StoreLock",
    "initialize_store",
]
