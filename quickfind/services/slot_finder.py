"""
Application service for finding open appointment slots.

The service fetches practitioners, bookings and leave once through the
injected read collaborators, validates the request, and hands the actual
search to the domain-level ``SingleSearch`` and ``CombinationSequencer``.
The collaborators are plain protocols, so the persistence layer can be a
database, an HTTP API or the YAML snapshot adapter used by the CLI.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, TypeVar

import pendulum
from pendulum import DateTime

from ..domain.availability import AvailabilityIndex
from ..domain.cancellation import CancellationToken
from ..domain.combination import CombinationSequencer
from ..domain.exceptions import DataUnavailableError, QuickFindError, SearchValidationError
from ..domain.models import (
    CombinationStep,
    ExistingAppointment,
    LeaveBlock,
    Practitioner,
    SearchOutcome,
    SearchRequest,
    TimeRange,
    TreatmentType,
)
from ..domain.single_search import SingleSearch
from ..domain.slot_generator import SlotGenerator
from ..domain.validation import (
    resolve_days,
    resolve_practitioners,
    validate_combination_steps,
    validate_duration,
    validate_request,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PracticeDataClient(Protocol):
    """Read access to practitioners, bookings and leave."""

    async def list_practitioners(self, role: Optional[str] = None) -> List[Practitioner]:
        """Return practitioners, optionally filtered by role tag."""

    async def list_appointments(
        self,
        practitioner_ids: Optional[Sequence[str]],
        date_range: TimeRange,
    ) -> List[ExistingAppointment]:
        """Return committed appointments overlapping the date range."""

    async def list_leave_blocks(
        self,
        practitioner_ids: Optional[Sequence[str]],
        date_range: TimeRange,
    ) -> List[LeaveBlock]:
        """Return leave of the given practitioners plus practice-wide closures."""


class TreatmentCatalog(Protocol):
    """Lookup of treatment types by id."""

    async def get_treatment_type(self, treatment_type_id: str) -> Optional[TreatmentType]:
        """Return the treatment type, or None if the id is unknown."""


class SlotFinderService:
    """
    Entry point for single and combination slot searches.

    Data is fetched once per call, before the search starts; the search
    itself runs on a worker thread pool so the event loop stays free.
    """

    def __init__(
        self,
        data_client: PracticeDataClient,
        catalog: TreatmentCatalog,
        *,
        timezone: str = "Europe/Amsterdam",
        max_workers: int = 4,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._data_client = data_client
        self._catalog = catalog
        self._timezone = timezone
        self._max_workers = max_workers
        self._clock = clock or (lambda: pendulum.now(timezone))

    async def find_single_slots(
        self,
        request: SearchRequest,
        cancel: Optional[CancellationToken] = None,
    ) -> SearchOutcome:
        """
        Find open slots for one treatment step.

        Raises:
            SearchValidationError: If the request is invalid
            DataUnavailableError: If practice data cannot be loaded
        """
        today = self._today()
        validate_request(request, today)
        if not request.treatment_type_id:
            raise SearchValidationError("A single search needs a treatment type")

        treatment_type = await self.get_treatment_type(request.treatment_type_id)
        duration = request.duration_minutes
        if duration is None:
            duration = treatment_type.default_duration_minutes
        validate_duration(duration)

        practitioners = await self._fetch(
            self._data_client.list_practitioners(role=request.role),
            "practitioners",
        )
        candidates = resolve_practitioners(
            practitioners,
            practitioner_id=request.practitioner_id,
            role=request.role,
        )

        days = resolve_days(request, today)
        logger.info(
            "Searching %d-minute %s slots for %d practitioner(s) over %d day(s)",
            duration,
            treatment_type.name,
            len(candidates),
            len(days),
        )
        if not days:
            return SearchOutcome(results=[])

        index = await self.build_index([p.id for p in candidates], days)
        search = SingleSearch(index, SlotGenerator(request.granularity_minutes))

        outcome = await asyncio.to_thread(
            search.find_single_slots,
            days=days,
            practitioners=candidates,
            window=request.window,
            treatment_type=treatment_type,
            duration_minutes=duration,
            cancel=cancel,
            max_workers=self._max_workers,
        )
        self._log_outcome(outcome, "slot")
        return outcome

    async def find_combination_slots(
        self,
        steps: Sequence[CombinationStep],
        request: SearchRequest,
        cancel: Optional[CancellationToken] = None,
    ) -> SearchOutcome:
        """
        Find chains of back-to-back slots for a combination appointment.

        Only the date and window fields of ``request`` are used; each step
        brings its own practitioner, treatment type and duration.

        Raises:
            SearchValidationError: If the request or the steps are invalid
            DataUnavailableError: If practice data cannot be loaded
        """
        today = self._today()
        validate_request(request, today)
        ordered_steps = validate_combination_steps(steps)

        practitioners = await self._fetch(
            self._data_client.list_practitioners(),
            "practitioners",
        )
        known_ids = {p.id for p in practitioners}
        unknown = [s.practitioner_id for s in ordered_steps if s.practitioner_id not in known_ids]
        if unknown:
            raise SearchValidationError(f"Unknown practitioner(s) in combination: {', '.join(unknown)}")

        days = resolve_days(request, today)
        logger.info(
            "Searching %d-step combinations (%d minutes) over %d day(s)",
            len(ordered_steps),
            sum(step.duration for step in ordered_steps),
            len(days),
        )
        if not days:
            return SearchOutcome(results=[])

        practitioner_ids = list(dict.fromkeys(step.practitioner_id for step in ordered_steps))
        index = await self.build_index(practitioner_ids, days)
        sequencer = CombinationSequencer(index, SlotGenerator(request.granularity_minutes))

        outcome = await asyncio.to_thread(
            sequencer.find_combination_slots,
            ordered_steps,
            days=days,
            window=request.window,
            cancel=cancel,
            max_workers=self._max_workers,
        )
        self._log_outcome(outcome, "chain")
        return outcome

    async def get_treatment_type(self, treatment_type_id: str) -> TreatmentType:
        """Look up a treatment type, rejecting unknown ids."""
        treatment_type = await self._fetch(
            self._catalog.get_treatment_type(treatment_type_id),
            "treatment types",
        )
        if treatment_type is None:
            raise SearchValidationError(f"Unknown treatment type '{treatment_type_id}'")
        return treatment_type

    async def build_step(
        self,
        *,
        order: int,
        practitioner_id: str,
        treatment_type_id: str,
        duration_minutes: Optional[int] = None,
    ) -> CombinationStep:
        """Build a combination step from catalog ids."""
        treatment_type = await self.get_treatment_type(treatment_type_id)
        return CombinationStep(
            order=order,
            treatment_type=treatment_type,
            practitioner_id=practitioner_id,
            duration_minutes=duration_minutes,
        )

    async def list_practitioners(self, role: Optional[str] = None) -> List[Practitioner]:
        return await self._fetch(self._data_client.list_practitioners(role=role), "practitioners")

    async def build_index(
        self,
        practitioner_ids: Sequence[str],
        days: Sequence[DateTime],
    ) -> AvailabilityIndex:
        """Fetch bookings and leave for the searched days and index them."""
        date_range = TimeRange(start=days[0], end=days[-1].add(days=1))

        appointments, leave_blocks = await asyncio.gather(
            self._fetch(
                self._data_client.list_appointments(practitioner_ids, date_range),
                "appointments",
            ),
            self._fetch(
                self._data_client.list_leave_blocks(practitioner_ids, date_range),
                "leave blocks",
            ),
        )
        logger.debug(
            "Loaded %d appointment(s) and %d leave block(s) for %s",
            len(appointments),
            len(leave_blocks),
            date_range,
        )
        return AvailabilityIndex(appointments=appointments, leave_blocks=leave_blocks)

    def _today(self) -> DateTime:
        return self._clock().in_timezone(self._timezone).start_of("day")

    @staticmethod
    async def _fetch(awaitable: Awaitable[T], what: str) -> T:
        """
        Await a collaborator call.

        Any failure other than our own errors becomes a DataUnavailableError;
        the search never continues on partial data.
        """
        try:
            return await awaitable
        except QuickFindError:
            raise
        except Exception as exc:
            logger.warning("Could not load %s: %s", what, exc)
            raise DataUnavailableError(f"Could not load {what}: {exc}") from exc

    @staticmethod
    def _log_outcome(outcome: SearchOutcome, noun: str) -> None:
        if outcome.cancelled:
            logger.warning(
                "Search cancelled; returning %d partial %s result(s)",
                len(outcome.results),
                noun,
            )
        else:
            logger.info("Found %d %s(s)", len(outcome.results), noun)
