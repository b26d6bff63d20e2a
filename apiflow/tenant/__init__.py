"""
apiflow Tenant Data Access

Per-invocation connections to tenant MongoDB databases and the store
protocol data nodes execute against.
"""

from .connection import TenantConnectionManager
from .store import InMemoryDataStore, MotorDataStore, TenantDataStore, UpdateSummary, to_plain

__all__ = [
    "InMemoryDataStore",
    "MotorDataStore",
    "TenantConnectionManager",
    "TenantDataStore",
    "UpdateSummary",
    "to_plain",
]
