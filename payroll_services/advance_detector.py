"""
AdvanceDetector -- inter-subsidiary advances for cross-subsidiary payroll.

Responsibility:
    When an allocation is funded by a subsidiary other than the employee's
    home subsidiary, the funding subsidiary owes the home subsidiary the
    allocation's net salary.  The detector keeps exactly one live advance
    per such payroll record, routed through the funding subsidiary's hub
    grant, and owns the advance state machine.

Architecture position:
    Services.  Called by PayrollEngine inside the per-employee unit of
    work; ``settle_advance`` / ``cancel_advance`` are called by the
    external settlement workflow with its own session.

Invariants enforced:
    - Advance iff cross-subsidiary: no advance is ever created for an
      allocation funded by the home subsidiary, and a live advance whose
      record no longer needs one is cancelled.
    - At most one non-cancelled advance per payroll record (also enforced
      by the partial unique index on the table).
    - Transitions: PENDING -> SETTLED, PENDING -> CANCELLED.  Nothing
      leaves a terminal state.

Failure modes:
    - HubGrantNotFoundError: the funding subsidiary has no hub grant.
    - SettledAdvanceConflictError: a regeneration changed the net salary
      behind an already-settled advance.  The employee's unit rolls back.
    - AdvanceNotFoundError / InvalidAdvanceTransitionError from the
      state-machine operations.

Audit relevance:
    Every creation, cancellation and settlement is logged with the advance
    id, record id, subsidiaries and amount.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_config.schema import PayrollPolicy
from payroll_kernel.db.types import round_money
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import (
    AdvanceData,
    AdvancePreview,
    AdvanceState,
    PayrollRecordData,
    PayrollRecordStatus,
)
from payroll_kernel.domain.values import SYSTEM_ACTOR_ID, PayPeriod, Subsidiary
from payroll_kernel.exceptions import (
    AdvanceNotFoundError,
    HubGrantNotFoundError,
    InvalidAdvanceTransitionError,
    SettledAdvanceConflictError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.advance import InterSubsidiaryAdvanceModel

logger = get_logger("services.advance_detector")


class AdvanceDetector:
    """
    Creates, maintains and transitions InterSubsidiaryAdvance rows.

    Contract:
        - ``detect_advances()`` flushes but never commits; the caller owns
          the transaction.
        - ``preview()`` is pure and touches no session.

    Non-goals:
        - Does NOT move money or settle anything by itself.
    """

    def __init__(
        self,
        policy: PayrollPolicy,
        clock: Clock | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self._policy = policy
        self._clock = clock or SystemClock()
        self._actor_id = actor_id

    def hub_grant_for(self, subsidiary: Subsidiary) -> str:
        hub = self._policy.hub_grant_for(subsidiary)
        if hub is None:
            logger.error("hub_grant_not_found", extra={"subsidiary": subsidiary.value})
            raise HubGrantNotFoundError(subsidiary.value)
        return hub

    # -------------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------------

    def preview(self, records: Sequence[PayrollRecordData]) -> list[AdvancePreview]:
        """Advances ``records`` would need, without touching storage."""
        previews: list[AdvancePreview] = []
        for record in records:
            if record.status is not PayrollRecordStatus.ACTIVE or not record.is_cross_subsidiary:
                continue
            previews.append(
                AdvancePreview(
                    funding_allocation_id=record.funding_allocation_id,
                    from_subsidiary=record.funding_subsidiary,
                    to_subsidiary=record.home_subsidiary,
                    via_grant_id=self.hub_grant_for(record.funding_subsidiary),
                    amount=record.net_salary,
                    pay_period=record.pay_period,
                )
            )
        return previews

    def detect_advances(
        self,
        session: Session,
        employee_id: UUID,
        pay_period: PayPeriod,
        records: Sequence[PayrollRecordData],
    ) -> list[AdvanceData]:
        """
        Bring the advances of ``records`` in line with their net salaries.

        Preconditions:
            - Every record has been persisted (``record_id`` is set) in
              ``session``'s open transaction.
        Postconditions:
            - Returns the live advance of every ACTIVE cross-subsidiary
              record, in record order.
        Raises:
            HubGrantNotFoundError, SettledAdvanceConflictError.
        """
        record_ids = [r.record_id for r in records if r.record_id is not None]
        live_by_record = self._live_advances(session, record_ids)

        advances: list[AdvanceData] = []
        for record in records:
            live = live_by_record.get(record.record_id)
            needs_advance = (
                record.status is PayrollRecordStatus.ACTIVE and record.is_cross_subsidiary
            )

            if not needs_advance:
                if live is not None and live.advance_state is AdvanceState.PENDING:
                    self._cancel(live, reason="record no longer cross-subsidiary")
                continue

            hub = self.hub_grant_for(record.funding_subsidiary)
            amount = round_money(record.net_salary)

            if live is None:
                advances.append(self._create(session, employee_id, pay_period, record, hub, amount))
                continue

            live_amount = round_money(Decimal(live.amount))
            match live.advance_state:
                case AdvanceState.PENDING if live_amount == amount:
                    logger.debug("advance_unchanged", extra={"advance_id": str(live.id)})
                    advances.append(live.to_dto())
                case AdvanceState.PENDING:
                    self._cancel(live, reason=f"superseded: amount {live_amount} -> {amount}")
                    session.flush()
                    advances.append(self._create(session, employee_id, pay_period, record, hub, amount))
                case AdvanceState.SETTLED if live_amount == amount:
                    advances.append(live.to_dto())
                case AdvanceState.SETTLED:
                    logger.error(
                        "settled_advance_conflict",
                        extra={
                            "advance_id": str(live.id),
                            "settled_amount": str(live_amount),
                            "new_amount": str(amount),
                        },
                    )
                    raise SettledAdvanceConflictError(str(live.id), live_amount, amount)

        session.flush()
        return advances

    def cancel_for_record(self, session: Session, record_id: UUID, reason: str) -> int:
        """Cancel the pending advance of ``record_id``; returns how many were cancelled."""
        live = self._live_advances(session, [record_id]).get(record_id)
        if live is None or live.advance_state is not AdvanceState.PENDING:
            return 0
        self._cancel(live, reason=reason)
        session.flush()
        return 1

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def settle_advance(self, session: Session, advance_id: UUID, settlement_date: date) -> AdvanceData:
        """
        PENDING -> SETTLED.

        Raises:
            AdvanceNotFoundError: unknown ``advance_id``.
            InvalidAdvanceTransitionError: the advance is not PENDING.
        """
        model = self._get(session, advance_id)
        self._require_pending(model, AdvanceState.SETTLED)
        model.state = AdvanceState.SETTLED.value
        model.settlement_date = settlement_date
        self._touch(model)
        session.flush()
        logger.info(
            "advance_settled",
            extra={
                "advance_id": str(model.id),
                "amount": str(model.amount),
                "settlement_date": settlement_date.isoformat(),
            },
        )
        return model.to_dto()

    def cancel_advance(self, session: Session, advance_id: UUID, reason: str) -> AdvanceData:
        """
        PENDING -> CANCELLED.

        Raises:
            AdvanceNotFoundError: unknown ``advance_id``.
            InvalidAdvanceTransitionError: the advance is not PENDING.
        """
        model = self._get(session, advance_id)
        self._require_pending(model, AdvanceState.CANCELLED)
        self._cancel(model, reason=reason)
        session.flush()
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _live_advances(
        self, session: Session, record_ids: Sequence[UUID],
    ) -> dict[UUID, InterSubsidiaryAdvanceModel]:
        if not record_ids:
            return {}
        rows = session.execute(
            select(InterSubsidiaryAdvanceModel).where(
                InterSubsidiaryAdvanceModel.payroll_record_id.in_(record_ids),
                InterSubsidiaryAdvanceModel.state != AdvanceState.CANCELLED.value,
            )
        ).scalars().all()
        return {row.payroll_record_id: row for row in rows}

    def _create(
        self,
        session: Session,
        employee_id: UUID,
        pay_period: PayPeriod,
        record: PayrollRecordData,
        hub: str,
        amount: Decimal,
    ) -> AdvanceData:
        now = self._clock.now()
        model = InterSubsidiaryAdvanceModel(
            payroll_record_id=record.record_id,
            employee_id=employee_id,
            from_subsidiary=record.funding_subsidiary.value,
            to_subsidiary=record.home_subsidiary.value,
            via_grant_id=hub,
            amount=amount,
            pay_period=pay_period.end,
            state=AdvanceState.PENDING.value,
            advance_date=pay_period.end,
            created_by_id=self._actor_id,
            created_at=now,
            updated_at=now,
        )
        session.add(model)
        session.flush()
        logger.info(
            "advance_created",
            extra={
                "advance_id": str(model.id),
                "payroll_record_id": str(record.record_id),
                "from_subsidiary": model.from_subsidiary,
                "to_subsidiary": model.to_subsidiary,
                "via_grant_id": hub,
                "amount": str(amount),
            },
        )
        return model.to_dto()

    def _cancel(self, model: InterSubsidiaryAdvanceModel, reason: str) -> None:
        model.state = AdvanceState.CANCELLED.value
        model.notes = reason
        self._touch(model)
        logger.info(
            "advance_cancelled",
            extra={
                "advance_id": str(model.id),
                "payroll_record_id": str(model.payroll_record_id),
                "amount": str(model.amount),
                "reason": reason,
            },
        )

    def _touch(self, model: InterSubsidiaryAdvanceModel) -> None:
        model.updated_at = self._clock.now()
        model.updated_by_id = self._actor_id

    @staticmethod
    def _get(session: Session, advance_id: UUID) -> InterSubsidiaryAdvanceModel:
        model = session.get(InterSubsidiaryAdvanceModel, advance_id)
        if model is None:
            raise AdvanceNotFoundError(str(advance_id))
        return model

    @staticmethod
    def _require_pending(model: InterSubsidiaryAdvanceModel, target: AdvanceState) -> None:
        current = model.advance_state
        if current is not AdvanceState.PENDING:
            logger.warning(
                "advance_transition_rejected",
                extra={
                    "advance_id": str(model.id),
                    "from_state": current.value,
                    "to_state": target.value,
                },
            )
            raise InvalidAdvanceTransitionError(str(model.id), current.value, target.value)
