"""
Public submission endpoint.
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_submission_service
from common.schemas import SubmissionCreateRequest, SubmissionCreateResponse
from modules.submission_service import SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/submissions",
    response_model=SubmissionCreateResponse,
    tags=["Submissions"]
)
def create_submission(
    request: SubmissionCreateRequest,
    service: SubmissionService = Depends(get_submission_service)
):
    """
    Submit content for review.

    Args:
        request: Submission type, payload and optional attribution

    Returns:
        SubmissionCreateResponse: The generated submission id
    """
    submission_id = service.submit(
        request.type,
        request.data,
        request.submitted_by
    )
    return SubmissionCreateResponse(submission_id=submission_id)
