"""
Payment Module

Contribution payments, one per member per round, and their lifecycle:

    PENDING -> SUBMITTED -> PAID       member claims, admin approves
    PENDING -> PAID                    admin confirms directly
    SUBMITTED -> REJECTED -> SUBMITTED admin rejects, member resubmits

OVERDUE is never stored; it is derived from the due date and a reference
clock. Penalties and reminder dates are derived from the group settings the
same way.
"""

from decimal import Decimal
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .currency import Money, Currency, sum_money
from .storage import StorageInterface, StorageRecord, NotFoundError
from .audit import AuditTrail, AuditEventType
from .logging_config import get_logger, log_action
from .groups import Group, GroupManager, GroupSettings, Member, PenaltyType


class PaymentStatus(Enum):
    """Payment states"""
    PENDING = "pending"
    SUBMITTED = "submitted"  # Member says they paid, awaiting the admin
    PAID = "paid"
    REJECTED = "rejected"
    OVERDUE = "overdue"      # Derived only


UNRESOLVED_STATUSES = {PaymentStatus.PENDING, PaymentStatus.SUBMITTED, PaymentStatus.REJECTED}


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@dataclass
class Payment(StorageRecord):
    """Contribution of one member for one round"""
    group_id: str
    round_number: int
    member_id: str
    member_name: str
    amount: Money
    due_date: datetime
    status: PaymentStatus = PaymentStatus.PENDING
    submitted_at: Optional[datetime] = None
    submitted_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    payment_account_id: Optional[str] = None
    note: Optional[str] = None

    def __post_init__(self):
        if self.amount.is_negative():
            raise ValueError("Payment amount cannot be negative")
        if self.status == PaymentStatus.OVERDUE:
            raise ValueError("Overdue is derived and cannot be stored")
        if self.round_number < 1:
            raise ValueError("Round number must be at least 1")

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """Pending or rejected after the due date"""
        now = _aware(now or datetime.now(timezone.utc))
        return (
            self.status in (PaymentStatus.PENDING, PaymentStatus.REJECTED)
            and _aware(self.due_date) < now
        )

    def effective_status(self, now: Optional[datetime] = None) -> PaymentStatus:
        if self.is_overdue(now):
            return PaymentStatus.OVERDUE
        return self.status

    def days_late(self, now: Optional[datetime] = None) -> int:
        if not self.is_overdue(now):
            return 0
        now = _aware(now or datetime.now(timezone.utc))
        return max(1, (now.date() - _aware(self.due_date).date()).days)


def calculate_penalty(payment: Payment, settings: GroupSettings,
                      now: Optional[datetime] = None) -> Money:
    """
    Late penalty of a payment. Percentage penalties charge the rate per day
    late on the payment amount; fixed penalties are charged once overdue.
    """
    zero = Money.zero(payment.amount.currency)
    if not settings.penalty_enabled:
        return zero
    days = payment.days_late(now)
    if days == 0:
        return zero
    if settings.penalty_type == PenaltyType.FIXED:
        return Money(settings.penalty_amount, payment.amount.currency)
    return payment.amount * (settings.penalty_amount / Decimal('100') * days)


def reminder_dates(settings: GroupSettings, due_date: datetime) -> List[datetime]:
    """Reminder times for a due date, relative day offsets at the configured time"""
    if not settings.reminder_enabled:
        return []
    hours, minutes = (int(part) for part in settings.reminder_time.split(":"))
    due_date = _aware(due_date)
    dates = {
        (due_date + timedelta(days=offset)).replace(hour=hours, minute=minutes, second=0, microsecond=0)
        for offset in settings.reminder_days
    }
    return sorted(dates)


class PaymentManager:
    """
    Manages contribution payments and their approval workflow
    """

    def __init__(self, storage: StorageInterface, group_manager: GroupManager,
                 audit_trail: AuditTrail):
        self.storage = storage
        self.group_manager = group_manager
        self.audit_trail = audit_trail
        self.payments_table = "payments"
        self.logger = get_logger("arisan.payments")

    def create_payment(self, group: Group, member: Member, round_number: int,
                       due_date: datetime) -> Payment:
        """Pending payment of the member's contribution for a round"""
        now = datetime.now(timezone.utc)
        payment = Payment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            group_id=group.id,
            round_number=round_number,
            member_id=member.id,
            member_name=member.name,
            amount=group.contribution_for_member(member),
            due_date=due_date,
        )
        self._save_payment(payment)
        return payment

    def create_round_payments(self, group: Group, round_number: int,
                              due_date: datetime) -> List[Payment]:
        return [
            self.create_payment(group, member, round_number, due_date)
            for member in group.members
        ]

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        data = self.storage.load(self.payments_table, payment_id)
        if data:
            return self._payment_from_dict(data)
        return None

    def get_payments_by_round(self, group_id: str, round_number: int) -> List[Payment]:
        data = self.storage.find(self.payments_table, {"group_id": group_id, "round_number": round_number})
        payments = [self._payment_from_dict(item) for item in data]
        return sorted(payments, key=lambda p: (p.member_name, p.created_at))

    def get_member_payments(self, group_id: str, member_id: str) -> List[Payment]:
        data = self.storage.find(self.payments_table, {"group_id": group_id, "member_id": member_id})
        payments = [self._payment_from_dict(item) for item in data]
        return sorted(payments, key=lambda p: p.round_number)

    def find_payment(self, group_id: str, member_id: str, round_number: int) -> Optional[Payment]:
        data = self.storage.find(self.payments_table, {
            "group_id": group_id, "member_id": member_id, "round_number": round_number
        })
        if data:
            return self._payment_from_dict(data[0])
        return None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit_payment(
        self,
        payment_id: str,
        user_id: Optional[str] = None,
        note: Optional[str] = None,
        payment_account_id: Optional[str] = None
    ) -> Payment:
        """
        Member claims to have paid. Allowed from PENDING or REJECTED, by the
        member themselves or a group admin.
        """
        with self.storage.atomic():
            payment, group = self._load(payment_id)
            if user_id is not None:
                member = group.get_member(payment.member_id)
                is_owner = member is not None and member.user_id == user_id
                if not is_owner and not self.group_manager.is_admin(group, user_id):
                    raise PermissionError("Only the member or a group admin can submit this payment")

            if payment.status not in (PaymentStatus.PENDING, PaymentStatus.REJECTED):
                self._refuse(payment, "submit", user_id)
            if payment_account_id and not any(a.id == payment_account_id for a in group.payment_accounts):
                raise NotFoundError(f"Payment account {payment_account_id} not found")

            now = datetime.now(timezone.utc)
            payment.status = PaymentStatus.SUBMITTED
            payment.submitted_at = now
            payment.submitted_by = user_id
            payment.note = note
            payment.payment_account_id = payment_account_id
            payment.rejection_reason = None
            payment.updated_at = now
            self._save_payment(payment)

            self._audit(AuditEventType.PAYMENT_SUBMITTED, payment, user_id, {"note": note})
        return payment

    def approve_payment(self, payment_id: str, actor_id: Optional[str] = None) -> Payment:
        """Admin approves a submitted payment"""
        with self.storage.atomic():
            payment, group = self._load(payment_id)
            self.group_manager.require_admin(group, actor_id)
            if payment.status != PaymentStatus.SUBMITTED:
                self._refuse(payment, "approve", actor_id)
            self._mark_paid(payment, actor_id)
            self._audit(AuditEventType.PAYMENT_APPROVED, payment, actor_id)
        return payment

    def confirm_payment(self, payment_id: str, actor_id: Optional[str] = None) -> Payment:
        """Admin marks a pending payment paid without a member submission"""
        with self.storage.atomic():
            payment, group = self._load(payment_id)
            self.group_manager.require_admin(group, actor_id)
            if payment.status != PaymentStatus.PENDING:
                self._refuse(payment, "confirm", actor_id)
            self._mark_paid(payment, actor_id)
            self._audit(AuditEventType.PAYMENT_CONFIRMED, payment, actor_id)
        return payment

    def reject_payment(self, payment_id: str, actor_id: Optional[str] = None,
                       reason: Optional[str] = None) -> Payment:
        """Admin rejects a submitted payment; the member may submit again"""
        with self.storage.atomic():
            payment, group = self._load(payment_id)
            self.group_manager.require_admin(group, actor_id)
            if payment.status != PaymentStatus.SUBMITTED:
                self._refuse(payment, "reject", actor_id)

            now = datetime.now(timezone.utc)
            payment.status = PaymentStatus.REJECTED
            payment.rejected_at = now
            payment.rejected_by = actor_id
            payment.rejection_reason = reason
            payment.updated_at = now
            self._save_payment(payment)

            self._audit(AuditEventType.PAYMENT_REJECTED, payment, actor_id, {"reason": reason})
        return payment

    def _mark_paid(self, payment: Payment, actor_id: Optional[str]) -> None:
        now = datetime.now(timezone.utc)
        payment.status = PaymentStatus.PAID
        payment.approved_at = now
        payment.approved_by = actor_id
        payment.updated_at = now
        self._save_payment(payment)

    def _refuse(self, payment: Payment, action: str, user_id: Optional[str]) -> None:
        log_action(self.logger, "warning", f"Cannot {action} payment in state {payment.status.value}",
                   user_id=user_id, action=f"{action}_payment", resource="payment",
                   group_id=payment.group_id)
        raise ValueError(f"Cannot {action} payment {payment.id} in state {payment.status.value}")

    def _load(self, payment_id: str):
        payment = self.get_payment(payment_id)
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found")
        group = self.group_manager.get_group(payment.group_id)
        if not group:
            raise NotFoundError(f"Group {payment.group_id} not found")
        return payment, group

    def _audit(self, event_type: AuditEventType, payment: Payment, user_id: Optional[str],
               extra: Optional[Dict[str, Any]] = None) -> None:
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="payment",
            entity_id=payment.id,
            group_id=payment.group_id,
            user_id=user_id,
            metadata={
                "member_id": payment.member_id,
                "round_number": payment.round_number,
                "amount": payment.amount.to_string(),
                **(extra or {})
            }
        )
        log_action(self.logger, "info", f"Payment {event_type.value}", user_id=user_id,
                   action=event_type.value, resource="payment", group_id=payment.group_id)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def delete_unresolved(self, group_id: str, member_id: str, round_number: int) -> int:
        """Drop a member's unpaid payments from the given round onwards"""
        deleted = 0
        for payment in self.get_member_payments(group_id, member_id):
            if payment.round_number >= round_number and payment.status in UNRESOLVED_STATUSES:
                if self.storage.delete(self.payments_table, payment.id):
                    deleted += 1
        return deleted

    def reprice_unresolved(self, group: Group, round_number: int) -> int:
        """
        Re-derive the amount of every pending or rejected payment of a round
        from the member's current turn. Returns how many payments changed.
        """
        repriced = 0
        for payment in self.get_payments_by_round(group.id, round_number):
            if payment.status not in (PaymentStatus.PENDING, PaymentStatus.REJECTED):
                continue
            member = group.get_member(payment.member_id)
            if member is None:
                continue
            amount = group.contribution_for_member(member)
            if amount != payment.amount:
                payment.amount = amount
                payment.updated_at = datetime.now(timezone.utc)
                self._save_payment(payment)
                repriced += 1
        return repriced

    def collected_total(self, group_id: str, round_number: int,
                        currency: Currency = Currency.IDR) -> Money:
        """Sum of paid amounts of a round"""
        paid = [p.amount for p in self.get_payments_by_round(group_id, round_number) if p.is_paid]
        return sum_money(paid, currency)

    def is_round_settled(self, group_id: str, round_number: int) -> bool:
        """True when every payment of the round is paid"""
        payments = self.get_payments_by_round(group_id, round_number)
        return all(p.is_paid for p in payments)

    def calculate_penalty(self, payment_id: str, now: Optional[datetime] = None) -> Money:
        payment, group = self._load(payment_id)
        return calculate_penalty(payment, group.settings, now)

    def reminder_dates(self, group_id: str) -> List[datetime]:
        """Reminder schedule for the group's current due date"""
        group = self.group_manager.get_group(group_id)
        if not group:
            raise NotFoundError(f"Group {group_id} not found")
        if group.due_date is None:
            return []
        return reminder_dates(group.settings, group.due_date)

    def round_summary(self, group_id: str, round_number: int,
                      now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Payment counts per effective status and totals for one round

        Returns:
            Dictionary with counts, expected, collected and outstanding amounts
        """
        group = self.group_manager.get_group(group_id)
        if not group:
            raise NotFoundError(f"Group {group_id} not found")

        payments = self.get_payments_by_round(group_id, round_number)
        counts = {status.value: 0 for status in PaymentStatus}
        for payment in payments:
            counts[payment.effective_status(now).value] += 1

        expected = sum_money((p.amount for p in payments), group.currency)
        collected = sum_money((p.amount for p in payments if p.is_paid), group.currency)
        penalties = sum_money((calculate_penalty(p, group.settings, now) for p in payments), group.currency)

        return {
            'round_number': round_number,
            'total_payments': len(payments),
            'status_counts': counts,
            'expected_amount': expected,
            'collected_amount': collected,
            'outstanding_amount': expected - collected,
            'penalty_amount': penalties,
            'settled': bool(payments) and counts[PaymentStatus.PAID.value] == len(payments),
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _save_payment(self, payment: Payment) -> None:
        self.storage.save(self.payments_table, payment.id, self._payment_to_dict(payment))

    def _payment_to_dict(self, payment: Payment) -> Dict[str, Any]:
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            'id': payment.id,
            'created_at': payment.created_at.isoformat(),
            'updated_at': payment.updated_at.isoformat(),
            'group_id': payment.group_id,
            'round_number': payment.round_number,
            'member_id': payment.member_id,
            'member_name': payment.member_name,
            'amount_amount': str(payment.amount.amount),
            'amount_currency': payment.amount.currency.code,
            'due_date': payment.due_date.isoformat(),
            'status': payment.status.value,
            'submitted_at': iso(payment.submitted_at),
            'submitted_by': payment.submitted_by,
            'approved_at': iso(payment.approved_at),
            'approved_by': payment.approved_by,
            'rejected_at': iso(payment.rejected_at),
            'rejected_by': payment.rejected_by,
            'rejection_reason': payment.rejection_reason,
            'payment_account_id': payment.payment_account_id,
            'note': payment.note,
        }

    def _payment_from_dict(self, data: Dict[str, Any]) -> Payment:
        def get_datetime(field: str) -> Optional[datetime]:
            value = data.get(field)
            return datetime.fromisoformat(value) if value else None

        return Payment(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            group_id=data['group_id'],
            round_number=data['round_number'],
            member_id=data['member_id'],
            member_name=data['member_name'],
            amount=Money(Decimal(data['amount_amount']), Currency[data['amount_currency']]),
            due_date=datetime.fromisoformat(data['due_date']),
            status=PaymentStatus(data['status']),
            submitted_at=get_datetime('submitted_at'),
            submitted_by=data.get('submitted_by'),
            approved_at=get_datetime('approved_at'),
            approved_by=data.get('approved_by'),
            rejected_at=get_datetime('rejected_at'),
            rejected_by=data.get('rejected_by'),
            rejection_reason=data.get('rejection_reason'),
            payment_account_id=data.get('payment_account_id'),
            note=data.get('note'),
        )
