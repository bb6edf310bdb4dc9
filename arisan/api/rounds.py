"""
Round endpoints
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from .auth import get_current_user, get_system
from .schemas import AdvanceRoundRequest, serialize_round, serialize_payment, money_dict
from ..identity import Identity
from ..system import ArisanSystem


router = APIRouter()


@router.post("/{group_id}/rounds/start", status_code=status.HTTP_201_CREATED)
async def start_first_round(
    group_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Open round 1 of a group created without starting (admin only)"""
    round_ = system.round_manager.start_first_round(group_id, actor_id=identity.user_id)
    return {"round": serialize_round(round_), "message": "Round started successfully"}


@router.post("/{group_id}/rounds/advance")
async def advance_round(
    group_id: str,
    request: AdvanceRoundRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Complete the current round and open the next one (admin only)"""
    round_ = system.round_manager.advance_round(
        group_id, actor_id=identity.user_id, force=request.force
    )
    if round_ is None:
        return {"round": None, "group_status": "selesai", "message": "Group completed"}
    return {"round": serialize_round(round_), "group_status": "aktif", "message": "Round advanced successfully"}


@router.get("/{group_id}/rounds")
async def get_round_history(
    group_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """All rounds, round 1 first"""
    rounds = system.round_manager.get_round_history(group_id)
    return {"rounds": [serialize_round(round_) for round_ in rounds]}


@router.get("/{group_id}/rounds/current")
async def get_current_round(
    group_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """The active round with its live winner and collected total"""
    round_ = system.round_manager.get_current_round(group_id)
    if not round_:
        raise HTTPException(status_code=404, detail="No active round")
    return serialize_round(round_)


@router.get("/{group_id}/rounds/{round_number}")
async def get_round(
    group_id: str,
    round_number: int,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Get one round"""
    round_ = system.round_manager.get_round(group_id, round_number)
    if not round_:
        raise HTTPException(status_code=404, detail="Round not found")
    return serialize_round(round_)


@router.get("/{group_id}/rounds/{round_number}/payments")
async def get_round_payments(
    group_id: str,
    round_number: int,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Payments of a round with their effective status"""
    now = datetime.now(timezone.utc)
    payments = system.payment_manager.get_payments_by_round(group_id, round_number)
    return {"payments": [serialize_payment(payment, now) for payment in payments]}


@router.get("/{group_id}/rounds/{round_number}/summary")
async def get_round_summary(
    group_id: str,
    round_number: int,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Status counts and collected, outstanding and penalty totals"""
    summary = system.payment_manager.round_summary(group_id, round_number)
    for key in ('expected_amount', 'collected_amount', 'outstanding_amount', 'penalty_amount'):
        summary[key] = money_dict(summary[key])
    return summary
