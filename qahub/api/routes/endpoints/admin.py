"""
Admin endpoints: review queue, review decisions, reconciliation and
admin account provisioning.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from api.dependencies import get_caller, get_submission_service
from common.schemas import (
    AdminSignupRequest,
    AdminSignupResponse,
    Identity,
    PendingListResponse,
    ReconcileResponse,
    ReviewRequest,
    ReviewResponse,
    SubmissionDetailResponse,
)
from modules.submission_service import SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/pending",
    response_model=PendingListResponse,
    tags=["Admin"]
)
def list_pending(
    caller: Optional[Identity] = Depends(get_caller),
    service: SubmissionService = Depends(get_submission_service)
):
    """
    Get all submissions awaiting review.

    Returns:
        PendingListResponse: Pending submissions in content type order
    """
    return PendingListResponse(submissions=service.list_pending(caller))


@router.post(
    "/review",
    response_model=ReviewResponse,
    tags=["Admin"]
)
def review_submission(
    request: ReviewRequest,
    caller: Optional[Identity] = Depends(get_caller),
    service: SubmissionService = Depends(get_submission_service)
):
    """
    Approve or reject a submission.

    Args:
        request: Submission id and action

    Returns:
        ReviewResponse: The updated submission
    """
    submission = service.review(caller, request.submission_id, request.action)
    return ReviewResponse(submission=submission)


@router.get(
    "/submissions/{submission_id}",
    response_model=SubmissionDetailResponse,
    tags=["Admin"]
)
def get_submission(
    submission_id: str,
    caller: Optional[Identity] = Depends(get_caller),
    service: SubmissionService = Depends(get_submission_service)
):
    """
    Get one submission record, whatever its status.
    """
    return SubmissionDetailResponse(
        submission=service.get_submission(caller, submission_id)
    )


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    tags=["Admin"]
)
def reconcile_pending(
    caller: Optional[Identity] = Depends(get_caller),
    service: SubmissionService = Depends(get_submission_service)
):
    """
    Rebuild pending indices and republish lost approvals from the stored
    submission records.

    Returns:
        ReconcileResponse: Pending count per content type
    """
    admin = service.require_admin(caller)
    counts = service.reconcile_pending_indices()
    logger.info(f"Pending indices reconciled by {admin.email or admin.id}")
    return ReconcileResponse(pending=counts)


@router.post(
    "/signup",
    response_model=AdminSignupResponse,
    tags=["Admin"]
)
def admin_signup(
    request: AdminSignupRequest,
    service: SubmissionService = Depends(get_submission_service)
):
    """
    Create an admin account, guarded by the shared admin secret.

    Returns:
        AdminSignupResponse: The created identity provider user
    """
    user = service.signup_admin(
        request.email,
        request.password,
        request.name,
        request.admin_secret
    )
    return AdminSignupResponse(user=user)
