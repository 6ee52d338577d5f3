"""Interactive terminal player: state, reducer, effects and runtime."""

from .reducer import Reducer
from .runtime import EffectRunner
from .session import Session
from .state import AppState

__all__ = [
    "AppState",
    "EffectRunner",
    "Reducer",
    "Session",
]
