"""State persistence."""

from plnstage.state.manager import StateManager

__all__ = ["StateManager"]
