"""
Application wiring.

Usage:
    from app import build_container

    container = build_container()
"""

from .container import Container, build_container

__all__ = ["Container", "build_container"]
