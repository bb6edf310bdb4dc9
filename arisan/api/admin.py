"""
Admin endpoints (audit trail integrity)
"""

from typing import Dict, Any

from fastapi import APIRouter, Depends

from .auth import get_current_user, get_system
from ..identity import Identity
from ..system import ArisanSystem


router = APIRouter()


@router.get("/audit/integrity")
async def verify_audit_integrity(
    identity: Identity = Depends(get_current_user),
    system: ArisanSystem = Depends(get_system)
) -> Dict[str, Any]:
    """Recompute every audit hash and check the chain links"""
    return system.audit_trail.verify_integrity()
