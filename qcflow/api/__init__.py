"""API module - Routes and dependencies"""
from .deps import get_actor_dep, get_engine_dep

__all__ = ["get_actor_dep", "get_engine_dep"]
