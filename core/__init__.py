"""
Core building blocks: update context, observable state and logging
"""

from .logging_config import setup_logging, get_logger
from .observable import ObservableValue
from .update_context import UpdateContext

__all__ = ["UpdateContext", "ObservableValue", "setup_logging", "get_logger"]
