"""
apiflow Runtime

Scoped execution of tenant flows: connection acquisition, engine
execution, release, and request-level logging.
"""

from .executor import TenantFlowRunner

__all__ = ["TenantFlowRunner"]
