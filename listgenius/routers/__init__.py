"""
API routers
"""
from . import csv, usage

__all__ = ["csv", "usage"]
