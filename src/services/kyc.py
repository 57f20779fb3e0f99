"""
KYC document verification.

Users submit one identity document at a time; admins approve or reject it.

State machine:
    pending -> approved   (terminal)
    pending -> rejected   (terminal, reason required)

A user may resubmit only after a rejection. Review updates are conditional
on the row still being pending, so two admins acting at once cannot both
decide the same verification.
"""

import asyncio
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel

from src.config.settings import get_settings
from src.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from src.models.schemas import CurrentUser, DocumentType, KycStatus, KycVerification
from src.monitoring.metrics import record_fallback, record_kyc_decision
from src.services.activities import record_activity
from src.services.backend import (
    call_with_fallback,
    execute,
    first_or_404,
    procedure_row,
    run_concurrently,
    utc_now_iso,
)
from src.services.storage import KYC_CONTENT_TYPES, StorageService, extension_for, timestamp_ms

logger = structlog.get_logger(__name__)


# =============================================================================
# Models
# =============================================================================


class KycStats(BaseModel):
    """Per-status counts for the admin KYC page."""
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    has_errors: bool = False


# =============================================================================
# Helpers
# =============================================================================


def _fetch_row(supabase: Any, verification_id: UUID) -> dict[str, Any]:
    response = execute(
        supabase.table("kyc_verifications").select("*").eq("id", str(verification_id)).limit(1),
        "kyc_verifications",
    )
    return first_or_404(response, "KYC verification", verification_id)


def document_number_for(document_type: DocumentType) -> str:
    """Reference number assigned to a new submission, e.g. ``passport-1700000000000``."""
    return f"{document_type.value}-{timestamp_ms()}"


def matches_search(verification: KycVerification, term: str) -> bool:
    needle = term.lower()
    haystack = (
        verification.user_name,
        verification.user_email,
        verification.document_number,
    )
    return any(needle in value.lower() for value in haystack if value)


# =============================================================================
# User Operations
# =============================================================================


def get_my_verification(supabase: Any, user: CurrentUser) -> Optional[KycVerification]:
    """Latest verification submitted by the user, if any."""
    response = execute(
        supabase.table("kyc_verifications")
        .select("*")
        .eq("user_id", str(user.id))
        .order("created_at", desc=True)
        .limit(1),
        "kyc_verifications",
    )
    rows = response.data or []
    return KycVerification.from_db_row(rows[0]) if rows else None


async def submit_verification(
    supabase: Any,
    storage: StorageService,
    user: CurrentUser,
    document_type: DocumentType,
    content: bytes,
    content_type: Optional[str],
    agreement_accepted: bool,
) -> KycVerification:
    """
    Upload an identity document and open a pending verification.

    Raises:
        ValidationFailedError: Agreement not accepted, bad file type or size.
        ConflictError: A pending or approved verification already exists.
    """
    if not agreement_accepted:
        raise ValidationFailedError(
            "You must accept the verification agreement",
            field="agreement_accepted",
        )
    ext = extension_for(content_type, KYC_CONTENT_TYPES)

    latest = get_my_verification(supabase, user)
    if latest is not None and latest.status != KycStatus.REJECTED:
        raise ConflictError(
            f"A {latest.status.value} verification already exists",
            {"verification_id": str(latest.id), "status": latest.status.value},
        )

    settings = get_settings()
    path = f"kyc/{user.id}-{timestamp_ms()}.{ext}"
    document_url = await storage.upload(
        settings.storage_kyc_bucket,
        path,
        content,
        content_type,
        max_bytes=settings.kyc_max_upload_bytes,
    )

    row = {
        "user_id": str(user.id),
        "document_type": document_type.value,
        "document_image_url": document_url,
        "document_number": document_number_for(document_type),
        "status": KycStatus.PENDING.value,
    }

    async def direct_insert() -> dict[str, Any]:
        response = execute(
            supabase.table("kyc_verifications").insert(row),
            "kyc_verifications",
            "insert",
        )
        return first_or_404(response, "KYC verification")

    data, source = await call_with_fallback(
        supabase,
        "insert_kyc_verification",
        {f"p_{key}": value for key, value in row.items()},
        direct_insert,
        component="kyc",
    )
    created = data if source == "fallback" else procedure_row(data)
    if created is None:
        created = get_my_verification(supabase, user)
        if created is None:
            raise NotFoundError("KYC verification")
        verification = created
    else:
        verification = KycVerification.from_db_row(created)

    record_kyc_decision("submitted")
    logger.info(
        "kyc_submitted",
        verification_id=str(verification.id),
        user_id=str(user.id),
        document_type=document_type.value,
        source=source,
    )
    await record_activity(
        supabase,
        activity_type="kyc",
        description=f"Submitted {document_type.value} for verification",
        user_id=user.id,
        resource_type="kyc_verification",
        resource_id=verification.id,
    )
    return verification


# =============================================================================
# Admin Operations
# =============================================================================


def list_verifications(
    supabase: Any,
    status: Optional[KycStatus] = None,
    document_type: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[KycVerification], int]:
    """
    Verifications newest first, enriched with the submitter's name and email.

    The search term matches name, email or document number and is applied
    after enrichment.
    """
    query = supabase.table("kyc_verifications").select("*")
    if status:
        query = query.eq("status", status.value)
    if document_type:
        query = query.eq("document_type", document_type)
    rows = execute(query.order("created_at", desc=True), "kyc_verifications").data or []

    user_ids = sorted({str(row["user_id"]) for row in rows if row.get("user_id")})
    users: dict[str, dict[str, Any]] = {}
    if user_ids:
        response = execute(
            supabase.table("users").select("id, full_name, email").in_("id", user_ids),
            "users",
        )
        users = {str(row["id"]): row for row in (response.data or [])}

    verifications = []
    for row in rows:
        user = users.get(str(row.get("user_id")), {})
        verifications.append(
            KycVerification.from_db_row(
                {**row, "user_name": user.get("full_name"), "user_email": user.get("email")}
            )
        )

    if search and search.strip():
        verifications = [v for v in verifications if matches_search(v, search.strip())]

    return verifications[offset:offset + limit], len(verifications)


def get_verification(supabase: Any, verification_id: UUID) -> KycVerification:
    return KycVerification.from_db_row(_fetch_row(supabase, verification_id))


async def kyc_stats(supabase: Any) -> KycStats:
    """Count verifications per status; a failed count reads as zero and sets has_errors."""
    queries = {
        "total": ("kyc_verifications", supabase.table("kyc_verifications").select("id", count="exact")),
    }
    for status in KycStatus:
        queries[status.value] = (
            "kyc_verifications",
            supabase.table("kyc_verifications").select("id", count="exact").eq("status", status.value),
        )

    outcomes = await run_concurrently(queries)
    stats = KycStats(**{name: outcome.total for name, outcome in outcomes.items()})
    stats.has_errors = not all(outcome.ok for outcome in outcomes.values())
    if stats.has_errors:
        record_fallback("kyc_stats", "partial_failure")
    return stats


def _transition(
    supabase: Any,
    verification_id: UUID,
    target: KycStatus,
    reason: Optional[str] = None,
) -> KycVerification:
    current = _fetch_row(supabase, verification_id)
    if current.get("status") != KycStatus.PENDING.value:
        raise InvalidTransitionError("KYC verification", current.get("status"), target.value)

    changes = {
        "status": target.value,
        "processed_at": utc_now_iso(),
        "rejection_reason": reason,
    }
    response = execute(
        supabase.table("kyc_verifications")
        .update(changes)
        .eq("id", str(verification_id))
        .eq("status", KycStatus.PENDING.value),
        "kyc_verifications",
        "update",
    )
    rows = response.data or []
    if not rows:
        # Another reviewer decided it between our read and write
        latest = _fetch_row(supabase, verification_id)
        raise InvalidTransitionError("KYC verification", latest.get("status"), target.value)
    return KycVerification.from_db_row(rows[0])


async def approve_verification(
    supabase: Any,
    admin: CurrentUser,
    verification_id: UUID,
) -> KycVerification:
    verification = await asyncio.to_thread(
        _transition, supabase, verification_id, KycStatus.APPROVED
    )
    record_kyc_decision("approved")
    logger.info("kyc_approved", verification_id=str(verification_id), admin_id=str(admin.id))
    await record_activity(
        supabase,
        activity_type="kyc",
        description=f"Approved KYC verification {verification.document_number or verification_id}",
        user_id=admin.id,
        resource_type="kyc_verification",
        resource_id=verification_id,
    )
    return verification


async def reject_verification(
    supabase: Any,
    admin: CurrentUser,
    verification_id: UUID,
    reason: str,
) -> KycVerification:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailedError("A rejection reason is required", field="reason")

    verification = await asyncio.to_thread(
        _transition, supabase, verification_id, KycStatus.REJECTED, reason
    )
    record_kyc_decision("rejected")
    logger.info(
        "kyc_rejected",
        verification_id=str(verification_id),
        admin_id=str(admin.id),
        reason=reason,
    )
    await record_activity(
        supabase,
        activity_type="kyc",
        description=f"Rejected KYC verification {verification.document_number or verification_id}: {reason}",
        user_id=admin.id,
        resource_type="kyc_verification",
        resource_id=verification_id,
    )
    return verification
