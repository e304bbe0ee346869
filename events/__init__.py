"""
Event tracking for the sync coordinator
"""

from .event_bus import EventBus, EventTypes, SystemEvent

__all__ = ['EventBus', 'EventTypes', 'SystemEvent']
