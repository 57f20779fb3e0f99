"""Endpoints for the authenticated user's own account.

Profile, password, the user's listings and their KYC submission.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from supabase import Client

from src.api.dependencies import get_current_user, get_storage, get_supabase
from src.api.models import ErrorResponse, PasswordChangeRequest
from src.config.settings import get_settings
from src.models.schemas import (
    Business,
    CurrentUser,
    DocumentType,
    KycVerification,
    ProfileUpdate,
    UserProfile,
)
from src.services import businesses as business_service
from src.services import kyc as kyc_service
from src.services import profiles as profile_service
from src.services.storage import StorageService, read_upload

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/me", tags=["Account"])


@router.get("/profile", response_model=UserProfile, summary="Get my profile")
def get_profile(
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
) -> UserProfile:
    return profile_service.get_profile(supabase, user)


@router.put("/profile", response_model=UserProfile, summary="Update my profile")
async def update_profile(
    changes: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
) -> UserProfile:
    return await profile_service.update_profile(supabase, user, changes)


@router.put(
    "/password",
    status_code=204,
    summary="Change my password",
    responses={422: {"model": ErrorResponse, "description": "Too short or confirmation mismatch"}},
)
async def change_password(
    request: PasswordChangeRequest,
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
) -> Response:
    await profile_service.change_password(
        supabase, user, request.new_password, request.confirm_password
    )
    return Response(status_code=204)


@router.get("/businesses", response_model=list[Business], summary="List my businesses")
def list_my_businesses(
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
) -> list[Business]:
    return business_service.list_my_businesses(supabase, user)


@router.get(
    "/kyc",
    response_model=Optional[KycVerification],
    summary="Get my latest KYC verification",
    description="Returns null when nothing has been submitted.",
)
def get_my_kyc(
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
) -> Optional[KycVerification]:
    return kyc_service.get_my_verification(supabase, user)


@router.post(
    "/kyc",
    response_model=KycVerification,
    status_code=201,
    summary="Submit a KYC document",
    responses={
        409: {"model": ErrorResponse, "description": "A pending or approved verification exists"},
        422: {"model": ErrorResponse, "description": "Invalid file or agreement not accepted"},
    },
)
async def submit_kyc(
    document_type: DocumentType = Form(...),
    agreement_accepted: bool = Form(False),
    file: UploadFile = File(..., description="Image or PDF of the document, max 5 MB"),
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
    storage: StorageService = Depends(get_storage),
) -> KycVerification:
    """
    Submit an identity document for review.

    Allowed when the user has no verification yet or the latest one was rejected.
    """
    content = await read_upload(file, get_settings().kyc_max_upload_bytes)
    return await kyc_service.submit_verification(
        supabase,
        storage,
        user,
        document_type,
        content,
        file.content_type,
        agreement_accepted,
    )
