"""
Domain layer - Pure search logic without external dependencies.
"""

from .aggregator import ResultAggregator
from .availability import AvailabilityIndex
from .cancellation import CancellationToken
from .combination import CombinationSequencer
from .exceptions import DataUnavailableError, QuickFindError, SearchValidationError
from .models import (
    CombinationStep,
    ExistingAppointment,
    FoundSlot,
    LeaveBlock,
    Practitioner,
    SearchOutcome,
    SearchRequest,
    SearchWindow,
    TimeRange,
    TreatmentType,
)
from .single_search import SingleSearch
from .slot_generator import SlotGenerator

__all__ = [
    "AvailabilityIndex",
    "CancellationToken",
    "CombinationSequencer",
    "CombinationStep",
    "DataUnavailableError",
    "ExistingAppointment",
    "FoundSlot",
    "LeaveBlock",
    "Practitioner",
    "QuickFindError",
    "ResultAggregator",
    "SearchOutcome",
    "SearchRequest",
    "SearchValidationError",
    "SearchWindow",
    "SingleSearch",
    "SlotGenerator",
    "TimeRange",
    "TreatmentType",
]
