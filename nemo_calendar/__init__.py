"""
nemo-calendar recurrence core

This package provides the recurrence handling behind a calendar UI:
- Recurrence data model with iCalendar/dateutil conversion (recurrence.py)
- Recurrence categories: classify and rebuild rules (recurrence_pattern.py)
- Event and occurrence values, iCalendar import/export (event_wrapper.py)
- Nearest-occurrence lookup (occurrence_locator.py)
- Detached occurrence exceptions (occurrence_exceptions.py)
- Event repository tying series and exceptions together (event_repository.py)
- Editing sessions (event_modification.py)
- Configuration and time zones (config.py, timezone_utils.py)
"""

from .config import Config
from .recurrence import Days, Frequency, MonthPosition, Recurrence, RecurrenceRule
from .recurrence_pattern import RecurrenceCategory, apply, classify
from .event_wrapper import CalendarEvent, EventOccurrence
from .occurrence_locator import locate
from .occurrence_exceptions import ExceptionIndex, detach
from .event_repository import EventRepository
from .event_modification import EventModification

__all__ = [
    'Config',
    'Days',
    'Frequency',
    'MonthPosition',
    'Recurrence',
    'RecurrenceRule',
    'RecurrenceCategory',
    'apply',
    'classify',
    'CalendarEvent',
    'EventOccurrence',
    'locate',
    'ExceptionIndex',
    'detach',
    'EventRepository',
    'EventModification',
]
