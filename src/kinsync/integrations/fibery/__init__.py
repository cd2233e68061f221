from .client import FiberyClient

__all__ = ["FiberyClient"]
