"""
Pydantic schemas for API requests and the response serializers
"""

from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field

from ..currency import Money, Currency, parse_amount
from ..contributions import ContributionEntry
from ..groups import Group, Member
from ..payments import Payment
from ..rounds import Round


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field("IDR", description="Currency code (IDR, MYR, SGD, USD)")

    def to_money(self) -> Money:
        try:
            currency = Currency[self.currency.upper()]
        except KeyError:
            raise ValueError(f"Unsupported currency: {self.currency}")
        return Money(parse_amount(self.amount), currency)

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


def money_dict(money: Optional[Money]) -> Optional[Dict[str, str]]:
    if money is None:
        return None
    return {**MoneyModel.from_money(money).model_dump(), "formatted": money.to_string()}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# Group schemas
class MemberInput(BaseModel):
    name: str
    phone: str = ""
    role: str = Field("anggota", description="Member role (ketua, bendahara, anggota)")
    contribution_amount: Optional[str] = None  # Decimal as string, fixed mode only
    user_id: Optional[str] = None


class CreateGroupRequest(BaseModel):
    name: str
    nominal: MoneyModel
    period: str = Field("bulanan", description="Round period (mingguan, bulanan)")
    total_members: int
    creator_name: str
    creator_phone: str = ""
    members: List[MemberInput] = Field(default_factory=list)
    turn_method: str = Field("manual", description="Turn method (manual, undian)")
    turn_order: Optional[List[str]] = None  # Member names
    mode: str = Field("tetap", description="Contribution mode (tetap, menurun)")
    target_amount: Optional[str] = None
    sub_period: int = 1
    gaps: List[str] = Field(default_factory=list)
    admin_fee: str = "0"
    payment_deadline_day: Optional[int] = None
    disbursement_day: Optional[int] = None
    start: bool = True


class UpdateGroupRequest(BaseModel):
    name: Optional[str] = None
    nominal: Optional[str] = None
    total_members: Optional[int] = None
    target_amount: Optional[str] = None
    sub_period: Optional[int] = None
    gaps: Optional[List[str]] = None
    admin_fee: Optional[str] = None
    payment_deadline_day: Optional[int] = None
    disbursement_day: Optional[int] = None


class UpdateSettingsRequest(BaseModel):
    penalty_enabled: Optional[bool] = None
    penalty_type: Optional[str] = Field(None, description="Penalty type (percentage, fixed)")
    penalty_amount: Optional[str] = None
    reminder_enabled: Optional[bool] = None
    reminder_days: Optional[List[int]] = None
    reminder_time: Optional[str] = None


class JoinGroupRequest(BaseModel):
    invite_code: str
    name: str
    phone: str = ""
    contribution_amount: Optional[str] = None


class UpdateRoleRequest(BaseModel):
    role: str = Field(..., description="Member role (ketua, bendahara, anggota)")


class PaymentAccountRequest(BaseModel):
    type: str = Field(..., description="Account type (bank, ewallet)")
    bank_name: str
    account_number: str
    account_holder: str


# Turn schemas
class MoveMemberRequest(BaseModel):
    member_id: str
    direction: str = Field(..., description="up or down")


class SetOrderRequest(BaseModel):
    order: List[str]  # Member ids, first receives round 1


# Round schemas
class AdvanceRoundRequest(BaseModel):
    force: bool = False


# Payment schemas
class SubmitPaymentRequest(BaseModel):
    note: Optional[str] = None
    payment_account_id: Optional[str] = None


class RejectPaymentRequest(BaseModel):
    reason: Optional[str] = None


# Serializers
def serialize_member(group: Group, member: Member) -> Dict[str, Any]:
    return {
        "id": member.id,
        "name": member.name,
        "phone": member.phone,
        "role": member.role.value,
        "turn_order": member.turn_order,
        "user_id": member.user_id,
        "contribution": money_dict(group.contribution_for_member(member)),
        "joined_at": member.created_at.isoformat(),
    }


def serialize_group(group: Group) -> Dict[str, Any]:
    return {
        "id": group.id,
        "name": group.name,
        "nominal": money_dict(group.nominal),
        "mode": group.mode.value,
        "period": group.period.value,
        "total_members": group.total_members,
        "member_count": len(group.members),
        "current_round": group.current_round,
        "status": group.status.value,
        "turn_method": group.turn_method.value,
        "invite_code": group.invite_code,
        "created_by": group.created_by,
        "due_date": _iso(group.due_date),
        "target_amount": money_dict(group.target_amount),
        "sub_period": group.sub_period,
        "gaps": [str(gap) for gap in group.gaps],
        "admin_fee": str(group.admin_fee),
        "payment_deadline_day": group.payment_deadline_day,
        "disbursement_day": group.disbursement_day,
        "payout_amount": money_dict(group.payout_amount),
        "settings": group.settings.to_dict(),
        "payment_accounts": [account.to_dict() for account in group.payment_accounts],
        "members": [serialize_member(group, member) for member in group.members],
    }


def serialize_schedule_entry(entry: ContributionEntry) -> Dict[str, Any]:
    return {
        "turn": entry.turn,
        "sub_period": entry.sub_period,
        "cumulative_reduction": money_dict(entry.cumulative_reduction),
        "base_amount": money_dict(entry.base_amount),
        "admin_fee": money_dict(entry.admin_fee),
        "contribution": money_dict(entry.contribution),
        "floored": entry.floored,
    }


def serialize_round(round_: Round) -> Dict[str, Any]:
    return {
        "id": round_.id,
        "round_number": round_.round_number,
        "status": round_.status.value,
        "due_date": round_.due_date.isoformat(),
        "winner_id": round_.winner_id,
        "winner_name": round_.winner_name,
        "total_collected": money_dict(round_.total_collected),
        "completed_at": _iso(round_.completed_at),
        "forced": round_.forced,
    }


def serialize_payment(payment: Payment, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "group_id": payment.group_id,
        "round_number": payment.round_number,
        "member_id": payment.member_id,
        "member_name": payment.member_name,
        "amount": money_dict(payment.amount),
        "due_date": payment.due_date.isoformat(),
        "status": payment.effective_status(now).value,
        "stored_status": payment.status.value,
        "submitted_at": _iso(payment.submitted_at),
        "submitted_by": payment.submitted_by,
        "approved_at": _iso(payment.approved_at),
        "approved_by": payment.approved_by,
        "rejection_reason": payment.rejection_reason,
        "payment_account_id": payment.payment_account_id,
        "note": payment.note,
    }


def optional_decimal(value: Optional[str]) -> Optional[Decimal]:
    return parse_amount(value) if value is not None else None
