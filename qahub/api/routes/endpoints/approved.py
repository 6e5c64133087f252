"""
Public listing of approved content.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_submission_service
from common.schemas import ApprovedListResponse
from modules.submission_service import SubmissionService

router = APIRouter()


@router.get(
    "/approved/{content_type}",
    response_model=ApprovedListResponse,
    tags=["Approved"]
)
def list_approved(
    content_type: str,
    service: SubmissionService = Depends(get_submission_service)
):
    """
    Get approved payloads of one content type.

    Unknown or never-approved types return an empty list.
    """
    return ApprovedListResponse(items=service.list_approved(content_type))
