"""
FastAPI dependency injection functions.
"""

from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from common.schemas import Identity
from modules.submission_service import SubmissionService

# Missing credentials are reported by the service, not by HTTPBearer
security = HTTPBearer(auto_error=False)


def get_submission_service(request: Request) -> SubmissionService:
    """
    Get the submission service built at startup.

    Args:
        request: FastAPI request object

    Returns:
        SubmissionService: Shared service instance
    """
    return request.app.state.submission_service


def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    service: SubmissionService = Depends(get_submission_service)
) -> Optional[Identity]:
    """
    Resolve the bearer token of the request, if any.

    Args:
        credentials: HTTP authorization credentials
        service: Submission service

    Returns:
        Identity or None when the request carries no bearer token

    Raises:
        AuthenticationError: If the token is rejected
    """
    if credentials is None:
        return None
    return service.resolve_caller(credentials.credentials)
