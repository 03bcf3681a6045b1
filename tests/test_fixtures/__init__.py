"""
Test Fixtures Package

Shared sample entities and the in-memory Redis stub.
"""

from .entities import Address, CustomerRecord, Employee, Person, Tier
from .redis_stub import InMemoryRedis

__all__ = ["Address", "CustomerRecord", "Employee", "InMemoryRedis", "Person", "Tier"]
