from .client import PlanningCenterClient

__all__ = ["PlanningCenterClient"]
