"""
HTTP surface of a worker.
"""
from .app import create_app

__all__ = ["create_app"]
