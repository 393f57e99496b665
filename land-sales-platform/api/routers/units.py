"""
Unit endpoints.
"""

from uuid import UUID

from fastapi import APIRouter

from api.models import UnitConsistencyResponse
from services.consistency_service import verify_unit_consistency

router = APIRouter()


@router.get(
    "/units/{unit_id}/consistency",
    response_model=UnitConsistencyResponse,
    summary="Unit Consistency Check",
    description="Compare a unit's status with the sales that reference it."
)
def unit_consistency_endpoint(unit_id: UUID):
    return UnitConsistencyResponse.from_domain(verify_unit_consistency(unit_id))
