"""
KYC endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error
from .schemas import KYCDocumentRequest, KYCSubmitRequest
from ..users import User


router = APIRouter()


@router.post("/submit")
async def submit_kyc(
    request: KYCSubmitRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    """Submit BVN and/or NIN for verification"""
    try:
        kyc = system.kyc_manager.submit(user.id, bvn=request.bvn, nin=request.nin)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "kyc": kyc, "message": "KYC information submitted for review"}


@router.get("/status")
async def kyc_status(
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    return {"success": True, "kyc": system.kyc_manager.status(user.id)}


@router.post("/documents", status_code=status.HTTP_201_CREATED)
async def upload_document(
    request: KYCDocumentRequest,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        document = system.kyc_manager.upload_document(user.id, request.document_type, request.filename)
    except ValueError as e:
        raise http_error(e)
    return {
        "success": True,
        "document": {
            "id": document.id,
            "type": document.document_type.value,
            "filename": document.filename,
            "status": document.status,
            "uploaded_at": document.created_at.isoformat(),
        },
    }
