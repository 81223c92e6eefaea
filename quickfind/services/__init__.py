"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .slot_finder import PracticeDataClient, SlotFinderService, TreatmentCatalog

__all__ = ["PracticeDataClient", "SlotFinderService", "TreatmentCatalog"]
