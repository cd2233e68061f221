"""
Mapping and reconciliation engine. The orchestrator lives in ``kinsync.engine.sync``.
"""

from .reconcile import Reconciler
from .transforms import FieldTransformer

__all__ = [
    "Reconciler",
    "FieldTransformer",
]
