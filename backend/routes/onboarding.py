"""
Onboarding Routes - Per-client onboarding links sent by a broker.

GET  /api/onboarding/{token}         client record for the wizard
POST /api/onboarding/{token}/submit  multipart submission
"""
from fastapi import APIRouter, Request

from services.form_link_service import get_onboarding_client, submit_onboarding
from utils.intake_submission import parse_intake_submission


router = APIRouter(prefix="/api/onboarding", tags=["onboarding"])


@router.get("/{token}")
async def get_onboarding(token: str):
    client = await get_onboarding_client(token)
    return {"client": client}


@router.post("/{token}/submit")
async def submit_onboarding_form(token: str, request: Request):
    """Complete onboarding. Body (multipart): token, fieldValues (JSON), document_<id> files."""
    field_values, uploads = await parse_intake_submission(request)
    return await submit_onboarding(token, field_values, uploads)
