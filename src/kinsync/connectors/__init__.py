"""
Connector framework for kinsync.

Each connector is both a source of canonical records and a sink for write commands.
"""

from .base import BaseConnector
from .pco import PlanningCenterConnector
from .fibery import FiberyConnector

__all__ = [
    "BaseConnector",
    "PlanningCenterConnector",
    "FiberyConnector",
]
