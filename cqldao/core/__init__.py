"""DAO engine: value encoding, statement compilation, constraint emulation."""

from .dao import EntityDAO

__all__ = ["EntityDAO"]
