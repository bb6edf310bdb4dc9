"""
Payment endpoints
"""

from fastapi import APIRouter, Depends, HTTPException

from .auth import get_current_user, get_system
from .schemas import SubmitPaymentRequest, RejectPaymentRequest, serialize_payment, money_dict
from ..identity import Identity
from ..system import ArisanSystem


router = APIRouter()


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Get payment details"""
    payment = system.payment_manager.get_payment(payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return serialize_payment(payment)


@router.post("/{payment_id}/submit")
async def submit_payment(
    payment_id: str,
    request: SubmitPaymentRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Member reports a transfer for admin review"""
    payment = system.payment_manager.submit_payment(
        payment_id,
        user_id=identity.user_id,
        note=request.note,
        payment_account_id=request.payment_account_id
    )
    return {"payment": serialize_payment(payment), "message": "Payment submitted successfully"}


@router.post("/{payment_id}/approve")
async def approve_payment(
    payment_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Approve a submitted payment (admin only)"""
    payment = system.payment_manager.approve_payment(payment_id, actor_id=identity.user_id)
    return {"payment": serialize_payment(payment), "message": "Payment approved successfully"}


@router.post("/{payment_id}/confirm")
async def confirm_payment(
    payment_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Mark a pending payment paid directly (admin only)"""
    payment = system.payment_manager.confirm_payment(payment_id, actor_id=identity.user_id)
    return {"payment": serialize_payment(payment), "message": "Payment confirmed successfully"}


@router.post("/{payment_id}/reject")
async def reject_payment(
    payment_id: str,
    request: RejectPaymentRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Reject a submitted payment (admin only)"""
    payment = system.payment_manager.reject_payment(
        payment_id, actor_id=identity.user_id, reason=request.reason
    )
    return {"payment": serialize_payment(payment), "message": "Payment rejected"}


@router.get("/{payment_id}/penalty")
async def get_payment_penalty(
    payment_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Late penalty owed on a payment under the group settings"""
    penalty = system.payment_manager.calculate_penalty(payment_id)
    return {"payment_id": payment_id, "penalty": money_dict(penalty)}
