"""
Tests for inter-subsidiary advances.

Covers:
- Exactly one advance per cross-subsidiary record, routed via the hub grant
- Amount changes cancel and recreate pending advances
- Settled advances are never silently changed
- PENDING -> SETTLED | CANCELLED state machine
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from payroll_kernel.domain.dtos import AdvanceState
from payroll_kernel.domain.values import PayPeriod, Subsidiary
from payroll_kernel.exceptions import (
    AdvanceNotFoundError,
    HubGrantNotFoundError,
    InvalidAdvanceTransitionError,
    SettledAdvanceConflictError,
)
from payroll_kernel.models.advance import InterSubsidiaryAdvanceModel
from payroll_kernel.models.payroll_record import PayrollRecordModel
from payroll_services.advance_detector import AdvanceDetector
from payroll_services.reporting import PayrollReportingService

from conftest import TEST_ACTOR_ID, grant, org


@pytest.fixture
def split_funded(hire):
    return hire(allocations=[(grant(Subsidiary.BHF, "G-BHF-01"), "0.2"), (org(Subsidiary.SMRU), "0.8")])


@pytest.fixture
def detector(config_store, deterministic_clock):
    return AdvanceDetector(config_store.policy, clock=deterministic_clock, actor_id=TEST_ACTOR_ID)


@pytest.fixture
def reporting(session_factory):
    return PayrollReportingService(session_factory)


def _settle(session_factory, detector, advance_id, on=date(2025, 7, 5)):
    with session_factory() as session, session.begin():
        return detector.settle_advance(session, advance_id, on)


class TestDetection:
    def test_single_advance_for_grant_allocation(self, payroll_engine, split_funded):
        """BHF-funded 20% of an SMRU employee: one BHF -> SMRU advance via S22001."""
        result = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        bhf_record = next(r for r in result.records if r.funding_subsidiary is Subsidiary.BHF)
        assert len(result.advances) == 1
        advance = result.advances[0]
        assert advance.from_subsidiary is Subsidiary.BHF
        assert advance.to_subsidiary is Subsidiary.SMRU
        assert advance.via_grant_id == "S22001"
        assert advance.amount == bhf_record.net_salary == Decimal("4315.00")
        assert advance.payroll_record_id == bhf_record.record_id
        assert advance.state is AdvanceState.PENDING
        assert advance.advance_date == date(2025, 6, 30)

    def test_home_funded_employee_has_no_advances(self, payroll_engine, hire):
        employee = hire()

        assert payroll_engine.compute_payroll(employee.employee_id, "2025-06").advances == ()

    def test_routes_through_funding_subsidiary_hub(self, payroll_engine, hire):
        """A BHF employee on an SMRU grant is advanced via SMRU's hub grant."""
        employee = hire(subsidiary=Subsidiary.BHF, allocations=[(grant(Subsidiary.SMRU, "G-SMRU-07"), "1")])

        advance = payroll_engine.compute_payroll(employee.employee_id, "2025-06").advances[0]

        assert (advance.from_subsidiary, advance.to_subsidiary) == (Subsidiary.SMRU, Subsidiary.BHF)
        assert advance.via_grant_id == "S0031"

    def test_missing_hub_grant_persists_nothing(self, payroll_engine, config_store, session_factory, split_funded):
        policy = config_store.policy
        config_store.replace_policy(replace(policy, hub_grants={Subsidiary.SMRU: "S0031"}))

        with pytest.raises(HubGrantNotFoundError, match="BHF"):
            payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        with session_factory() as session:
            assert session.scalars(select(PayrollRecordModel)).all() == []


class TestRegeneration:
    def test_unchanged_amount_keeps_advance(self, payroll_engine, reporting, split_funded):
        first = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")
        second = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        assert first.advances[0].advance_id == second.advances[0].advance_id
        assert len(reporting.employee_advances(split_funded.employee_id, "2025-06")) == 1

    def test_changed_amount_cancels_and_recreates(self, payroll_engine, directory, reporting, split_funded):
        first = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")
        directory.set_compensation_refund(split_funded.employee_id, PayPeriod(2025, 6), Decimal("1000"))

        second = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        bhf_record = next(r for r in second.records if r.funding_subsidiary is Subsidiary.BHF)
        new_advance = second.advances[0]
        assert new_advance.advance_id != first.advances[0].advance_id
        assert new_advance.amount == bhf_record.net_salary
        assert new_advance.state is AdvanceState.PENDING

        history = {a.advance_id: a for a in reporting.employee_advances(split_funded.employee_id, "2025-06")}
        old = history[first.advances[0].advance_id]
        assert old.state is AdvanceState.CANCELLED
        assert old.notes.startswith("superseded")
        assert len(history) == 2

    def test_settled_same_amount_is_kept(self, payroll_engine, session_factory, detector, split_funded):
        first = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")
        _settle(session_factory, detector, first.advances[0].advance_id)

        second = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        assert second.advances[0].advance_id == first.advances[0].advance_id
        assert second.advances[0].state is AdvanceState.SETTLED

    def test_settled_conflict_rolls_back_employee(
        self, payroll_engine, session_factory, detector, directory, reporting, split_funded,
    ):
        """Changing the net behind a settled advance fails the whole employee."""
        first = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")
        _settle(session_factory, detector, first.advances[0].advance_id)
        directory.set_compensation_refund(split_funded.employee_id, PayPeriod(2025, 6), Decimal("1000"))

        with pytest.raises(SettledAdvanceConflictError) as exc_info:
            payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        assert exc_info.value.settled_amount == Decimal("4315.00")
        records = reporting.employee_records(split_funded.employee_id, "2025-06")
        assert sorted(r.net_salary for r in records) == sorted(r.net_salary for r in first.records)


class TestStateMachine:
    def test_settle_pending(self, payroll_engine, session_factory, detector, split_funded):
        advance_id = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06").advances[0].advance_id

        settled = _settle(session_factory, detector, advance_id)

        assert settled.state is AdvanceState.SETTLED
        assert settled.settlement_date == date(2025, 7, 5)

    def test_cannot_settle_twice(self, payroll_engine, session_factory, detector, split_funded, captured_logs):
        advance_id = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06").advances[0].advance_id
        _settle(session_factory, detector, advance_id)

        with pytest.raises(InvalidAdvanceTransitionError, match="from settled to settled"):
            _settle(session_factory, detector, advance_id)
        assert any(r["message"] == "advance_transition_rejected" for r in captured_logs())

    def test_cancel_pending(self, payroll_engine, session_factory, detector, split_funded):
        advance_id = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06").advances[0].advance_id

        with session_factory() as session, session.begin():
            cancelled = detector.cancel_advance(session, advance_id, reason="grant closed")

        assert cancelled.state is AdvanceState.CANCELLED
        assert cancelled.notes == "grant closed"

    def test_cannot_cancel_settled(self, payroll_engine, session_factory, detector, split_funded):
        advance_id = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06").advances[0].advance_id
        _settle(session_factory, detector, advance_id)

        with pytest.raises(InvalidAdvanceTransitionError, match="from settled to cancelled"):
            with session_factory() as session, session.begin():
                detector.cancel_advance(session, advance_id, reason="too late")

    def test_cancelled_advance_recreated_on_rerun(self, payroll_engine, session_factory, detector, split_funded):
        """Cancelled advances are history; the next run creates a fresh one."""
        first = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")
        with session_factory() as session, session.begin():
            detector.cancel_advance(session, first.advances[0].advance_id, reason="manual")

        second = payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        assert second.advances[0].advance_id != first.advances[0].advance_id
        with session_factory() as session:
            live = session.scalars(
                select(InterSubsidiaryAdvanceModel).where(
                    InterSubsidiaryAdvanceModel.state != AdvanceState.CANCELLED.value,
                )
            ).all()
        assert len(live) == 1

    def test_unknown_advance(self, session_factory, detector):
        with pytest.raises(AdvanceNotFoundError):
            _settle(session_factory, detector, uuid4())


class TestPreview:
    def test_preview_skips_home_funded_records(self, payroll_engine, detector, split_funded):
        computation = payroll_engine.compute_preview(split_funded.employee_id, "2025-06")

        previews = detector.preview(computation.records)

        assert [p.from_subsidiary for p in previews] == [Subsidiary.BHF]
