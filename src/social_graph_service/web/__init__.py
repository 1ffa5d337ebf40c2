"""HTTP interface for the Social Graph Service."""

from .app import create_app

__all__ = ["create_app"]
