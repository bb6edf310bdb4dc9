"""
Turn order endpoints
"""

from fastapi import APIRouter, Depends, HTTPException

from .auth import get_current_user, get_system
from .schemas import MoveMemberRequest, SetOrderRequest, serialize_member
from ..identity import Identity
from ..system import ArisanSystem


router = APIRouter()


def _members_response(system: ArisanSystem, group_id: str, message: str):
    group = system.group_manager.get_group(group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return {
        "members": [serialize_member(group, member) for member in group.members],
        "message": message
    }


@router.post("/{group_id}/turns/draw")
async def draw_turn_order(
    group_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Randomly redraw the turn order (admin only)"""
    record = system.turn_order_manager.draw_order(group_id, actor_id=identity.user_id)
    return {
        "draw_id": record.id,
        "performed_at": record.performed_at.isoformat(),
        "result": record.result,
        "message": "Turn order drawn successfully"
    }


@router.get("/{group_id}/turns/draws")
async def get_draw_history(
    group_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Every draw performed for the group"""
    history = system.turn_order_manager.get_draw_history(group_id)
    return {"draws": [record.to_dict() for record in history]}


@router.post("/{group_id}/turns/move")
async def move_member(
    group_id: str,
    request: MoveMemberRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Swap a member with the neighbouring turn (admin only)"""
    system.turn_order_manager.move_member(
        group_id, request.member_id, request.direction, actor_id=identity.user_id
    )
    return _members_response(system, group_id, "Turn order updated successfully")


@router.put("/{group_id}/turns")
async def set_turn_order(
    group_id: str,
    request: SetOrderRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Set the complete turn order (admin only)"""
    system.turn_order_manager.set_order(group_id, request.order, actor_id=identity.user_id)
    return _members_response(system, group_id, "Turn order updated successfully")


@router.delete("/{group_id}/members/{member_id}")
async def remove_member(
    group_id: str,
    member_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Remove a member and close the gap in the turn order (admin only)"""
    system.turn_order_manager.remove_member(group_id, member_id, actor_id=identity.user_id)
    return _members_response(system, group_id, "Member removed successfully")
