"""
Submission review business logic.

This module contains pure business logic with NO framework dependencies.
Used by both the API and the reconciliation worker.

Store layout:
    submission_<type>_<millis>  Submission record
    pending_<type>              {"submissions": [id, ...]}
    approved_<type>             {"items": [data, ...], "submissionIds": [id, ...]}

Each operation issues its store writes strictly in sequence and without
rollback. A failure in the middle of review() leaves a prefix of its
writes:

- record written, approved index not: the submission is approved but its
  payload is unpublished. reconcile_pending_indices() republishes it.
- record (and approved index) written, pending index not: the id stays in
  its pending index. list_pending() filters it out and
  reconcile_pending_indices() drops it.
"""

import hmac
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional

import pydantic

from common.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    IdentityProviderError,
    NotFoundError,
    ValidationError,
)
from common.locks import KeyedLock
from common.schemas import (
    KNOWN_TYPES,
    ApprovedIndex,
    Identity,
    PendingIndex,
    ReviewAction,
    Submission,
    SubmissionStatus,
)
from modules.identity import IdentityProvider
from modules.ids import generate_submission_id
from modules.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SUBMISSION_PREFIX = "submission_"
PENDING_PREFIX = "pending_"
APPROVED_PREFIX = "approved_"
DEFAULT_SUBMITTER = "Anonymous"


def pending_key(content_type: str) -> str:
    return f"{PENDING_PREFIX}{content_type}"


def approved_key(content_type: str) -> str:
    return f"{APPROVED_PREFIX}{content_type}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_missing(value: Any) -> bool:
    """True for None, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list, tuple)):
        return len(value) == 0
    return False


def is_missing_payload(data: Any) -> bool:
    """Like is_missing(), and also rejects false and zero payloads."""
    if isinstance(data, (bool, int, float)):
        return not data
    return is_missing(data)


class SubmissionService:
    """
    Submission state machine over the key-value store.

    pending -> approved and pending -> rejected are the only transitions.

    Args:
        store: Key-value store holding records and indices
        locks: Keyed lock serializing index updates per content type
        identity_provider: Resolves bearer tokens, provisions admins.
            Maintenance callers that only reconcile may omit it.
        admin_secret: Shared secret required by signup_admin(); signup is
            refused when empty
    """

    def __init__(
        self,
        store: KeyValueStore,
        locks: KeyedLock,
        identity_provider: Optional[IdentityProvider] = None,
        admin_secret: str = ""
    ):
        self._store = store
        self._locks = locks
        self._identity = identity_provider
        self._admin_secret = admin_secret

    def _identity_provider(self) -> IdentityProvider:
        if self._identity is None:
            raise IdentityProviderError("Identity provider not configured")
        return self._identity

    # Authorization

    def resolve_caller(self, token: Optional[str]) -> Optional[Identity]:
        """
        Resolve a bearer token to a caller identity.

        Returns None when no token is given; an invalid token raises
        AuthenticationError from the identity provider.
        """
        if not token:
            return None
        return self._identity_provider().verify_token(token)

    def require_admin(self, caller: Optional[Identity]) -> Identity:
        """
        Check that caller is an authenticated admin.

        Raises:
            AuthenticationError: If there is no caller
            AuthorizationError: If the caller is not an admin
        """
        if caller is None:
            raise AuthenticationError("Unauthorized - Admin access required")
        if not caller.is_admin:
            logger.warning(f"Non-admin {caller.email or caller.id} denied")
            raise AuthorizationError("Forbidden - Admin privileges required")
        return caller

    # Index helpers

    def _read_pending(self, content_type: str) -> PendingIndex:
        raw = self._store.get(pending_key(content_type))
        if not isinstance(raw, dict):
            return PendingIndex()
        return PendingIndex(
            submissions=[s for s in raw.get("submissions") or [] if isinstance(s, str)]
        )

    def _read_approved(self, content_type: str) -> ApprovedIndex:
        raw = self._store.get(approved_key(content_type))
        if not isinstance(raw, dict):
            return ApprovedIndex()
        return ApprovedIndex(
            items=list(raw.get("items") or []),
            submission_ids=[
                s for s in raw.get("submissionIds") or [] if isinstance(s, str)
            ]
        )

    def _parse(self, submission_id: str, raw: Any) -> Optional[Submission]:
        """Validate a stored value as a Submission; None if it is not one."""
        if not submission_id.startswith(SUBMISSION_PREFIX) or not isinstance(raw, dict):
            return None
        try:
            return Submission.model_validate(raw)
        except pydantic.ValidationError as e:
            logger.warning(
                f"Malformed submission record {submission_id}: "
                f"{e.error_count()} validation errors"
            )
            return None

    def _load(self, submission_id: str) -> Submission:
        submission = self._parse(submission_id, self._store.get(submission_id))
        if submission is None:
            raise NotFoundError("Submission not found")
        return submission

    def _allocate_id(self, content_type: str) -> str:
        # Caller holds the type lock, so has() then set() cannot race
        submission_id = generate_submission_id(content_type)
        while self._store.has(submission_id):
            submission_id = generate_submission_id(content_type)
        return submission_id

    def _publish(self, content_type: str, submissions: list[Submission]) -> None:
        # Caller holds the type lock; items and ids are appended in one write
        approved = self._read_approved(content_type)
        for submission in submissions:
            approved.items.append(submission.data)
            approved.submission_ids.append(submission.id)
        self._store.set(approved_key(content_type), approved.to_store())

    # Operations

    def submit(
        self,
        content_type: Optional[str],
        data: Any,
        submitted_by: Optional[str] = None
    ) -> str:
        """
        Store a new pending submission and index it.

        Args:
            content_type: Content type, e.g. cheatsheet
            data: Opaque content payload
            submitted_by: Attribution, defaults to Anonymous

        Returns:
            str: The generated submission id

        Raises:
            ValidationError: If type or data is missing
        """
        if (
            not isinstance(content_type, str)
            or is_missing(content_type)
            or is_missing_payload(data)
        ):
            raise ValidationError("Missing required fields")

        content_type = content_type.strip()
        attribution = submitted_by.strip() if isinstance(submitted_by, str) else ""

        with self._locks.hold(content_type):
            submission_id = self._allocate_id(content_type)
            submission = Submission(
                id=submission_id,
                type=content_type,
                data=data,
                submitted_by=attribution or DEFAULT_SUBMITTER,
                submitted_at=utcnow(),
            )
            self._store.set(submission_id, submission.to_store())

            pending = self._read_pending(content_type)
            pending.submissions.append(submission_id)
            self._store.set(pending_key(content_type), pending.model_dump())

        logger.info(
            f"Created submission {submission_id} "
            f"by {submission.submitted_by}"
        )
        return submission_id

    def list_pending(self, caller: Optional[Identity]) -> list[Submission]:
        """
        List submissions awaiting review across all known types.

        Results follow the content type order, then pending index order
        within each type. Index entries whose record is gone, malformed or no
        longer pending are skipped.
        """
        self.require_admin(caller)

        submissions: list[Submission] = []
        for content_type in KNOWN_TYPES:
            for submission_id in self._read_pending(content_type).submissions:
                submission = self._parse(submission_id, self._store.get(submission_id))
                if submission is None or submission.status != SubmissionStatus.PENDING:
                    logger.warning(
                        f"Skipping stale pending entry {submission_id}"
                    )
                    continue
                submissions.append(submission)

        return submissions

    def get_submission(self, caller: Optional[Identity], submission_id: str) -> Submission:
        """Return one submission record to an admin."""
        self.require_admin(caller)
        if is_missing(submission_id):
            raise ValidationError("Missing submission id")
        return self._load(submission_id)

    def review(
        self,
        caller: Optional[Identity],
        submission_id: Optional[str],
        action: Optional[str]
    ) -> Submission:
        """
        Approve or reject a pending submission.

        Writes, in order: the updated record, the approved index (approve
        only), the pending index.

        Args:
            caller: Reviewing identity, must be an admin
            submission_id: Submission to review
            action: "approve" or "reject"

        Returns:
            Submission: The updated record

        Raises:
            ValidationError: If fields are missing or action is unknown
            NotFoundError: If the submission does not exist
            ConflictError: If the submission was already reviewed
        """
        reviewer = self.require_admin(caller)

        if not isinstance(submission_id, str) or is_missing(submission_id) or is_missing(action):
            raise ValidationError("Missing required fields")
        try:
            review_action = ReviewAction(action)
        except ValueError:
            raise ValidationError("Action must be 'approve' or 'reject'") from None

        content_type = self._load(submission_id).type

        with self._locks.hold(content_type):
            # Re-read under the lock so concurrent reviews see each other
            submission = self._load(submission_id)
            if submission.status != SubmissionStatus.PENDING:
                raise ConflictError(
                    f"Submission already {submission.status.value}"
                )

            submission.status = (
                SubmissionStatus.APPROVED
                if review_action == ReviewAction.APPROVE
                else SubmissionStatus.REJECTED
            )
            submission.reviewed_by = reviewer.email or reviewer.id
            submission.reviewed_at = utcnow()
            self._store.set(submission_id, submission.to_store())

            if review_action == ReviewAction.APPROVE:
                self._publish(content_type, [submission])

            pending = self._read_pending(content_type)
            if submission_id in pending.submissions:
                pending.submissions = [
                    s for s in pending.submissions if s != submission_id
                ]
                self._store.set(pending_key(content_type), pending.model_dump())

        logger.info(
            f"Submission {submission_id} {submission.status.value} "
            f"by {submission.reviewed_by}"
        )
        return submission

    def list_approved(self, content_type: str) -> list[Any]:
        """Public listing of approved payloads; unknown types yield []."""
        return self._read_approved(content_type).items

    def reconcile_pending_indices(self) -> dict[str, int]:
        """
        Rebuild every pending index from the stored submission records.

        Pending ids are ordered by submission time. Approved records whose
        payload never reached their approved index are published again,
        in review order. Each type is repaired under its type lock, after
        re-checking records created or reviewed since the scan.

        Returns:
            dict[str, int]: Pending count per content type
        """
        pending_scan: dict[str, list[tuple[datetime, str]]] = defaultdict(list)
        approved_scan: dict[str, list[tuple[datetime, str]]] = defaultdict(list)
        for key in self._store.keys(prefix=SUBMISSION_PREFIX):
            submission = self._parse(key, self._store.get(key))
            if submission is None or submission.id != key:
                continue
            if submission.status == SubmissionStatus.PENDING:
                pending_scan[submission.type].append((submission.submitted_at, key))
            elif submission.status == SubmissionStatus.APPROVED:
                approved_scan[submission.type].append(
                    (submission.reviewed_at or submission.submitted_at, key)
                )

        indexed_types = {
            key[len(PENDING_PREFIX):]
            for key in self._store.keys(prefix=PENDING_PREFIX)
        }
        extra_types = sorted(
            (set(pending_scan) | set(approved_scan) | indexed_types) - set(KNOWN_TYPES)
        )

        counts: dict[str, int] = {}
        for content_type in (*KNOWN_TYPES, *extra_types):
            with self._locks.hold(content_type):
                counts[content_type] = self._rebuild_pending(
                    content_type,
                    [key for _, key in sorted(pending_scan[content_type])]
                )
                if approved_scan[content_type]:
                    self._republish_approved(
                        content_type,
                        [key for _, key in sorted(approved_scan[content_type])]
                    )

        return counts

    def _rebuild_pending(self, content_type: str, scanned: list[str]) -> int:
        current = self._read_pending(content_type).submissions
        candidates = scanned + [s for s in current if s not in scanned]

        rebuilt = []
        for submission_id in candidates:
            submission = self._parse(submission_id, self._store.get(submission_id))
            if (
                submission is not None
                and submission.status == SubmissionStatus.PENDING
                and submission.type == content_type
            ):
                rebuilt.append(submission_id)

        if rebuilt != current:
            self._store.set(
                pending_key(content_type),
                PendingIndex(submissions=rebuilt).model_dump()
            )
            logger.info(
                f"Rebuilt {pending_key(content_type)}: "
                f"{len(current)} -> {len(rebuilt)} entries"
            )
        return len(rebuilt)

    def _republish_approved(self, content_type: str, scanned: list[str]) -> None:
        approved = self._read_approved(content_type)
        if not approved.tracks_sources():
            logger.warning(
                f"{approved_key(content_type)} does not record its source "
                f"submissions, skipping repair"
            )
            return

        published = set(approved.submission_ids)
        missing = []
        for submission_id in scanned:
            if submission_id in published:
                continue
            submission = self._parse(submission_id, self._store.get(submission_id))
            if (
                submission is not None
                and submission.status == SubmissionStatus.APPROVED
                and submission.type == content_type
            ):
                missing.append(submission)

        if missing:
            self._publish(content_type, missing)
            logger.info(
                f"Republished {len(missing)} approved submissions "
                f"to {approved_key(content_type)}"
            )

    # Admin provisioning

    def signup_admin(
        self,
        email: Optional[str],
        password: Optional[str],
        name: Optional[str],
        admin_secret: Optional[str]
    ) -> dict[str, Any]:
        """
        Create an admin identity when the shared secret matches.

        Raises:
            AuthorizationError: If the admin secret is wrong
            ValidationError: If email or password is missing
        """
        if (
            not self._admin_secret
            or not isinstance(admin_secret, str)
            or not hmac.compare_digest(admin_secret.encode(), self._admin_secret.encode())
        ):
            logger.warning("Admin signup rejected: invalid admin secret")
            raise AuthorizationError("Invalid admin secret")

        if is_missing(email) or is_missing(password):
            raise ValidationError("Missing required fields")

        user = self._identity_provider().create_admin_user(email, password, name)
        logger.info(f"Created admin account {email}")
        return user

