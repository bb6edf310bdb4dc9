"""
Group endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status

from .auth import get_current_user, get_system
from .schemas import (
    CreateGroupRequest, UpdateGroupRequest, UpdateSettingsRequest, JoinGroupRequest,
    UpdateRoleRequest, PaymentAccountRequest, MoneyModel,
    serialize_group, serialize_member, serialize_schedule_entry, money_dict, optional_decimal
)
from ..contributions import ContributionMode, verify_schedule
from ..currency import Money
from ..groups import ArisanPeriod, MemberRole, NewMember, PaymentAccountType, PenaltyType, TurnMethod
from ..identity import Identity
from ..system import ArisanSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_group(
    request: CreateGroupRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Create a group; the creator becomes its chair (ketua) at turn 1"""
    nominal = request.nominal.to_money()
    currency = nominal.currency

    members = [NewMember(
        name=request.creator_name,
        phone=request.creator_phone,
        role=MemberRole.CHAIR,
        user_id=identity.user_id,
    )]
    for member in request.members:
        amount = optional_decimal(member.contribution_amount)
        members.append(NewMember(
            name=member.name,
            phone=member.phone,
            role=MemberRole(member.role),
            contribution_amount=Money(amount, currency) if amount is not None else None,
            user_id=member.user_id,
        ))

    target = optional_decimal(request.target_amount)
    group = system.create_group(
        name=request.name,
        nominal=nominal,
        period=ArisanPeriod(request.period),
        total_members=request.total_members,
        created_by=identity.user_id,
        members=members,
        turn_method=TurnMethod(request.turn_method),
        turn_order=request.turn_order,
        mode=ContributionMode(request.mode),
        target_amount=Money(target, currency) if target is not None else None,
        sub_period=request.sub_period,
        gaps=[optional_decimal(gap) for gap in request.gaps],
        admin_fee=optional_decimal(request.admin_fee),
        payment_deadline_day=request.payment_deadline_day,
        disbursement_day=request.disbursement_day,
        start=request.start,
    )

    return {
        "group_id": group.id,
        "invite_code": group.invite_code,
        "group": serialize_group(group),
        "message": "Group created successfully"
    }


@router.get("")
async def list_groups(
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Groups the caller created or joined"""
    groups = system.group_manager.get_user_groups(identity.user_id)
    return {"groups": [serialize_group(group) for group in groups]}


@router.post("/join")
async def join_group(
    request: JoinGroupRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Join a group with its invite code"""
    group = system.group_manager.get_group_by_invite_code(request.invite_code)
    if not group:
        raise HTTPException(status_code=404, detail="Invalid invite code")

    amount = optional_decimal(request.contribution_amount)
    member = system.join_group(
        invite_code=request.invite_code,
        user_id=identity.user_id,
        name=request.name,
        phone=request.phone,
        contribution_amount=Money(amount, group.currency) if amount is not None else None,
    )
    group = system.group_manager.get_group(group.id)
    return {
        "group_id": group.id,
        "member": serialize_member(group, member),
        "message": "Joined group successfully"
    }


@router.get("/invite/{invite_code}")
async def get_group_by_invite_code(
    invite_code: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Preview a group before joining"""
    group = system.group_manager.get_group_by_invite_code(invite_code)
    if not group:
        raise HTTPException(status_code=404, detail="Invalid invite code")
    return {
        "group_id": group.id,
        "name": group.name,
        "nominal": money_dict(group.nominal),
        "period": group.period.value,
        "member_count": len(group.members),
        "total_members": group.total_members,
        "is_full": group.is_full,
    }


@router.get("/{group_id}")
async def get_group(
    group_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Get group details with members in turn order"""
    group = system.group_manager.get_group(group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return serialize_group(group)


@router.patch("/{group_id}")
async def update_group(
    group_id: str,
    request: UpdateGroupRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Update group info or declining parameters (admin only)"""
    group = system.group_manager.get_group(group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")

    changes = request.model_dump(exclude_none=True)
    for key in ('nominal', 'target_amount'):
        if key in changes:
            changes[key] = Money(optional_decimal(changes[key]), group.currency)
    if 'admin_fee' in changes:
        changes['admin_fee'] = optional_decimal(changes['admin_fee'])
    if 'gaps' in changes:
        changes['gaps'] = [optional_decimal(gap) for gap in changes['gaps']]

    group = system.group_manager.update_group(group_id, changes, actor_id=identity.user_id)
    return {"group": serialize_group(group), "message": "Group updated successfully"}


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Delete a group with its members, rounds and payments (admin only)"""
    system.group_manager.delete_group(group_id, actor_id=identity.user_id)
    return {"group_id": group_id, "message": "Group deleted successfully"}


@router.put("/{group_id}/settings")
async def update_settings(
    group_id: str,
    request: UpdateSettingsRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Update penalty and reminder settings (admin only)"""
    changes = request.model_dump(exclude_none=True)
    if 'penalty_type' in changes:
        changes['penalty_type'] = PenaltyType(changes['penalty_type'])
    if 'penalty_amount' in changes:
        changes['penalty_amount'] = optional_decimal(changes['penalty_amount'])

    settings = system.group_manager.update_settings(group_id, changes, actor_id=identity.user_id)
    return {"settings": settings.to_dict(), "message": "Settings updated successfully"}


@router.get("/{group_id}/schedule")
async def get_contribution_schedule(
    group_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Per-turn contribution schedule, with the target check for declining groups"""
    group = system.group_manager.get_group(group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")

    schedule = system.group_manager.contribution_schedule(group_id)
    terms = group.declining_terms
    return {
        "mode": group.mode.value,
        "schedule": [serialize_schedule_entry(entry) for entry in schedule],
        "verification": verify_schedule(terms) if terms else None,
    }


@router.get("/{group_id}/contributions/{turn}")
async def get_contribution_for_turn(
    group_id: str,
    turn: int,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Contribution owed by whoever holds a turn"""
    amount = system.group_manager.contribution_for_turn(group_id, turn)
    return {"turn": turn, "contribution": MoneyModel.from_money(amount).model_dump()}


@router.put("/{group_id}/members/{member_id}/role")
async def update_member_role(
    group_id: str,
    member_id: str,
    request: UpdateRoleRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Change a member's role (admin only)"""
    member = system.group_manager.update_member_role(
        group_id, member_id, MemberRole(request.role), actor_id=identity.user_id
    )
    group = system.group_manager.get_group(group_id)
    return {"member": serialize_member(group, member), "message": "Role updated successfully"}


@router.post("/{group_id}/payment-accounts", status_code=status.HTTP_201_CREATED)
async def add_payment_account(
    group_id: str,
    request: PaymentAccountRequest,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Add a bank or e-wallet account for contributions (admin only)"""
    account = system.group_manager.add_payment_account(
        group_id,
        PaymentAccountType(request.type),
        request.bank_name,
        request.account_number,
        request.account_holder,
        actor_id=identity.user_id
    )
    return {"account": account.to_dict(), "message": "Payment account added successfully"}


@router.delete("/{group_id}/payment-accounts/{account_id}")
async def remove_payment_account(
    group_id: str,
    account_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Remove a payment account (admin only)"""
    removed = system.group_manager.remove_payment_account(group_id, account_id, actor_id=identity.user_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Payment account not found")
    return {"account_id": account_id, "message": "Payment account removed successfully"}


@router.get("/{group_id}/audit")
async def get_group_audit_events(
    group_id: str,
    limit: int = 100,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Audit events of one group, oldest first"""
    events = system.audit_trail.get_events_for_group(group_id, limit=limit)
    return {
        "events": [
            {
                "id": event.id,
                "event_type": event.event_type.value,
                "entity_type": event.entity_type,
                "entity_id": event.entity_id,
                "user_id": event.user_id,
                "created_at": event.created_at.isoformat(),
                "metadata": event.metadata,
            }
            for event in events
        ]
    }


@router.get("/{group_id}/reminders")
async def get_reminder_dates(
    group_id: str,
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
):
    """Reminder times for the current due date"""
    dates = system.payment_manager.reminder_dates(group_id)
    return {"reminders": [value.isoformat() for value in dates]}
