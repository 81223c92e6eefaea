"""
Tests for the SlotFinderService orchestration layer.
"""

import asyncio
from datetime import time
from typing import List, Optional

import pendulum
import pytest

from quickfind.domain.cancellation import CancellationToken
from quickfind.domain.exceptions import DataUnavailableError, SearchValidationError
from quickfind.domain.models import (
    CombinationStep,
    ExistingAppointment,
    LeaveBlock,
    Practitioner,
    SearchRequest,
    SearchWindow,
    TreatmentType,
)
from quickfind.services.slot_finder import SlotFinderService

TZ = "Europe/Amsterdam"

CHECK_UP = TreatmentType(id="check-up", name="Check-up", default_duration_minutes=15)
CLEANING = TreatmentType(id="cleaning", name="Cleaning", default_duration_minutes=30)
MORNING = SearchWindow(start_time=time(9, 0), end_time=time(11, 0))


def at(hhmm: str, day: str = "2024-11-25"):
    return pendulum.parse(f"{day} {hhmm}", tz=TZ)


class StubPracticeClient:
    """Minimal stub matching PracticeDataClient and TreatmentCatalog."""

    def __init__(
        self,
        practitioners: List[Practitioner],
        appointments=(),
        leave_blocks=(),
        treatment_types=(CHECK_UP, CLEANING),
        fail_on: Optional[str] = None,
    ):
        self._practitioners = list(practitioners)
        self._appointments = list(appointments)
        self._leave_blocks = list(leave_blocks)
        self._treatment_types = {t.id: t for t in treatment_types}
        self._fail_on = fail_on
        self.calls: List[tuple] = []

    def _record(self, name: str, *args):
        self.calls.append((name,) + args)
        if self._fail_on == name:
            raise ConnectionError(f"{name} backend down")

    async def list_practitioners(self, role=None):
        self._record("practitioners", role)
        if role:
            return [p for p in self._practitioners if p.has_role(role)]
        return list(self._practitioners)

    async def list_appointments(self, practitioner_ids, date_range):
        self._record("appointments", tuple(practitioner_ids), date_range)
        return [a for a in self._appointments if a.practitioner_id in practitioner_ids]

    async def list_leave_blocks(self, practitioner_ids, date_range):
        self._record("leave", tuple(practitioner_ids), date_range)
        return [b for b in self._leave_blocks if b.is_global or b.practitioner_id in practitioner_ids]

    async def get_treatment_type(self, treatment_type_id):
        self._record("treatment_type", treatment_type_id)
        return self._treatment_types.get(treatment_type_id)


class TripAfter(CancellationToken):
    """Reports cancellation after a fixed number of checks."""

    def __init__(self, checks: int):
        super().__init__()
        self.remaining = checks

    @property
    def cancelled(self) -> bool:
        if self.remaining <= 0:
            return True
        self.remaining -= 1
        return False


def _build_service(client: StubPracticeClient, max_workers: int = 1) -> SlotFinderService:
    return SlotFinderService(
        data_client=client,
        catalog=client,
        timezone=TZ,
        max_workers=max_workers,
        clock=lambda: pendulum.datetime(2024, 11, 25, 7, 30, tz=TZ),
    )


def _request(**overrides) -> SearchRequest:
    values = dict(window=MORNING, horizon_days=1, treatment_type_id="cleaning")
    values.update(overrides)
    return SearchRequest(**values)


class TestFindSingleSlots:

    def test_boundary_scenario_through_service(self):
        client = StubPracticeClient(
            practitioners=[Practitioner(id="dr-a", role="DENTIST")],
            appointments=[ExistingAppointment(practitioner_id="dr-a", start=at("10:00"), end=at("10:30"))],
        )
        service = _build_service(client)

        outcome = asyncio.run(service.find_single_slots(_request(practitioner_id="dr-a")))

        assert [s.start.format("HH:mm") for s in outcome.results] == ["09:00", "09:15", "09:30", "10:30"]
        assert all(s.treatment_type == CLEANING for s in outcome.results)
        assert outcome.is_complete

    def test_data_is_fetched_once_up_front(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a"), Practitioner(id="dr-b")])
        service = _build_service(client, max_workers=4)

        asyncio.run(service.find_single_slots(_request(horizon_days=5)))

        names = [call[0] for call in client.calls]
        assert names.count("appointments") == 1
        assert names.count("leave") == 1
        appointment_call = next(call for call in client.calls if call[0] == "appointments")
        assert appointment_call[1] == ("dr-a", "dr-b")
        date_range = appointment_call[2]
        assert date_range.start == pendulum.datetime(2024, 11, 25, tz=TZ)
        assert date_range.end == pendulum.datetime(2024, 11, 30, tz=TZ)

    def test_duration_override(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")])
        service = _build_service(client)

        outcome = asyncio.run(service.find_single_slots(_request(duration_minutes=90)))

        assert [s.start.format("HH:mm") for s in outcome.results] == ["09:00", "09:15", "09:30"]
        assert all(s.duration_minutes == 90 for s in outcome.results)

    def test_global_leave_applies(self):
        client = StubPracticeClient(
            practitioners=[Practitioner(id="dr-a")],
            leave_blocks=[LeaveBlock(start=at("09:00"), end=at("10:30"), reason="TRAINING")],
        )
        service = _build_service(client)

        outcome = asyncio.run(service.find_single_slots(_request()))

        assert [s.start.format("HH:mm") for s in outcome.results] == ["10:30"]

    def test_role_filter_without_match_is_a_validation_error(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a", role="DENTIST")])
        service = _build_service(client)

        with pytest.raises(SearchValidationError, match="ORTHODONTIST"):
            asyncio.run(service.find_single_slots(_request(role="ORTHODONTIST")))

    def test_role_filter_limits_practitioners(self):
        client = StubPracticeClient(
            practitioners=[Practitioner(id="dr-a", role="DENTIST"), Practitioner(id="hyg-b", role="HYGIENIST")]
        )
        service = _build_service(client)

        outcome = asyncio.run(service.find_single_slots(_request(role="HYGIENIST")))

        assert {s.practitioner_id for s in outcome.results} == {"hyg-b"}

    def test_practitioner_outside_role_is_rejected(self):
        client = StubPracticeClient(
            practitioners=[Practitioner(id="dr-a", role="DENTIST"), Practitioner(id="hyg-b", role="HYGIENIST")]
        )
        service = _build_service(client)

        with pytest.raises(SearchValidationError):
            asyncio.run(service.find_single_slots(_request(role="HYGIENIST", practitioner_id="dr-a")))

    def test_unknown_practitioner_is_rejected(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")])
        service = _build_service(client)

        with pytest.raises(SearchValidationError, match="Unknown practitioner"):
            asyncio.run(service.find_single_slots(_request(practitioner_id="dr-x")))

    def test_empty_practice_is_rejected(self):
        service = _build_service(StubPracticeClient(practitioners=[]))

        with pytest.raises(SearchValidationError):
            asyncio.run(service.find_single_slots(_request()))

    def test_zero_day_horizon_is_an_empty_success(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")])
        service = _build_service(client)

        outcome = asyncio.run(service.find_single_slots(_request(horizon_days=0)))

        assert outcome.results == []
        assert outcome.is_complete
        assert not any(call[0] == "appointments" for call in client.calls)

    def test_fixed_date_searches_only_that_day(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")])
        service = _build_service(client)

        outcome = asyncio.run(
            service.find_single_slots(_request(horizon_days=7, fixed_date=pendulum.date(2024, 11, 27)))
        )

        assert outcome.results
        assert {s.date.isoformat() for s in outcome.results} == {"2024-11-27"}

    @pytest.mark.parametrize("fixed_date", [pendulum.date(2024, 11, 24), pendulum.date(2024, 12, 2)])
    def test_fixed_date_outside_horizon_is_rejected(self, fixed_date):
        service = _build_service(StubPracticeClient(practitioners=[Practitioner(id="dr-a")]))

        with pytest.raises(SearchValidationError, match="outside the search horizon"):
            asyncio.run(service.find_single_slots(_request(horizon_days=7, fixed_date=fixed_date)))

    def test_validation_happens_before_any_data_call(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")])
        service = _build_service(client)

        with pytest.raises(SearchValidationError):
            asyncio.run(service.find_single_slots(_request(duration_minutes=0)))
        with pytest.raises(SearchValidationError):
            asyncio.run(service.find_single_slots(_request(granularity_minutes=0)))
        with pytest.raises(SearchValidationError):
            asyncio.run(service.find_single_slots(_request(window=SearchWindow(time(11, 0), time(9, 0)))))

        assert client.calls == []

    def test_unknown_treatment_type_is_rejected(self):
        service = _build_service(StubPracticeClient(practitioners=[Practitioner(id="dr-a")]))

        with pytest.raises(SearchValidationError, match="Unknown treatment type"):
            asyncio.run(service.find_single_slots(_request(treatment_type_id="implant")))

    def test_missing_treatment_type_is_rejected(self):
        service = _build_service(StubPracticeClient(practitioners=[Practitioner(id="dr-a")]))

        with pytest.raises(SearchValidationError):
            asyncio.run(service.find_single_slots(_request(treatment_type_id=None)))

    @pytest.mark.parametrize("failing_call", ["practitioners", "appointments", "leave", "treatment_type"])
    def test_collaborator_failure_is_data_unavailable(self, failing_call):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")], fail_on=failing_call)
        service = _build_service(client)

        with pytest.raises(DataUnavailableError) as excinfo:
            asyncio.run(service.find_single_slots(_request()))

        assert isinstance(excinfo.value.__cause__, ConnectionError)

    def test_pre_cancelled_search_is_distinguishable_from_empty_result(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")])
        service = _build_service(client)
        token = CancellationToken()
        token.cancel()

        cancelled = asyncio.run(service.find_single_slots(_request(), cancel=token))
        empty = asyncio.run(service.find_single_slots(_request(horizon_days=0)))

        assert cancelled.results == [] and empty.results == []
        assert cancelled.cancelled and not cancelled.is_complete
        assert not empty.cancelled and empty.is_complete

    def test_cancel_mid_search_keeps_what_was_found(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")])
        service = _build_service(client, max_workers=1)

        outcome = asyncio.run(service.find_single_slots(_request(horizon_days=3), cancel=TripAfter(1)))

        assert outcome.cancelled
        assert outcome.results
        assert {s.date.isoformat() for s in outcome.results} == {"2024-11-25"}


class TestFindCombinationSlots:

    def _steps(self):
        return [
            CombinationStep(order=1, treatment_type=CHECK_UP, practitioner_id="dr-a"),
            CombinationStep(order=2, treatment_type=CLEANING, practitioner_id="hyg-b"),
        ]

    def test_combination_scenario_through_service(self):
        client = StubPracticeClient(
            practitioners=[Practitioner(id="dr-a"), Practitioner(id="hyg-b")],
            appointments=[ExistingAppointment(practitioner_id="dr-a", start=at("09:15"), end=at("09:30"))],
        )
        service = _build_service(client)
        request = SearchRequest(window=SearchWindow(time(9, 0), time(10, 0)), horizon_days=1)

        outcome = asyncio.run(service.find_combination_slots(self._steps(), request))

        assert len(outcome.results) == 1
        chain = outcome.results[0]
        assert [(s.practitioner_id, s.start.format("HH:mm"), s.end.format("HH:mm")) for s in chain] == [
            ("dr-a", "09:00", "09:15"),
            ("hyg-b", "09:15", "09:45"),
        ]
        appointment_call = next(call for call in client.calls if call[0] == "appointments")
        assert appointment_call[1] == ("dr-a", "hyg-b")

    def test_unknown_step_practitioner_is_rejected(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")])
        service = _build_service(client)

        with pytest.raises(SearchValidationError, match="hyg-b"):
            asyncio.run(service.find_combination_slots(self._steps(), SearchRequest(window=MORNING)))

    def test_single_step_combination_is_rejected_before_fetching(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a")])
        service = _build_service(client)

        with pytest.raises(SearchValidationError):
            asyncio.run(service.find_combination_slots(self._steps()[:1], SearchRequest(window=MORNING)))

        assert client.calls == []

    def test_zero_day_horizon_is_an_empty_success(self):
        client = StubPracticeClient(practitioners=[Practitioner(id="dr-a"), Practitioner(id="hyg-b")])
        service = _build_service(client)

        outcome = asyncio.run(
            service.find_combination_slots(self._steps(), SearchRequest(window=MORNING, horizon_days=0))
        )

        assert outcome.results == []
        assert outcome.is_complete

    def test_build_step_uses_catalog(self):
        service = _build_service(StubPracticeClient(practitioners=[]))

        step = asyncio.run(
            service.build_step(order=2, practitioner_id="hyg-b", treatment_type_id="cleaning", duration_minutes=45)
        )

        assert step.treatment_type == CLEANING
        assert step.duration == 45
        assert step.order == 2
