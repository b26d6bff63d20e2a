"""
apiflow Configuration

Engine bounds, tenant pool options and gateway settings.
"""

from .schemas import AppSettings, EngineSettings, TenantPoolSettings

__all__ = [
    "AppSettings",
    "EngineSettings",
    "TenantPoolSettings",
]
