"""UI."""

from plnstage.ui.logs import configure_logging
from plnstage.ui.reporter import Reporter

__all__ = ["Reporter", "configure_logging"]
