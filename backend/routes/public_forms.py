"""
Public Form Routes - Shareable broker form links.

GET  /api/public-form/{token}         template record for the wizard
POST /api/public-form/{token}/submit  multipart submission
"""
from fastapi import APIRouter, Request

from services.form_link_service import get_public_form_link, submit_public_form
from utils.intake_submission import parse_intake_submission


router = APIRouter(prefix="/api/public-form", tags=["public-forms"])


@router.get("/{token}")
async def get_public_form(token: str):
    """Link details plus the template data the wizard resolves."""
    link = await get_public_form_link(token)
    return {"link": link}


@router.post("/{token}/submit")
async def submit_public_form_link(token: str, request: Request):
    """
    Submit a completed public form.

    Body (multipart): token, fieldValues (JSON), document_<id> files.
    """
    field_values, uploads = await parse_intake_submission(request)
    return await submit_public_form(token, field_values, uploads)
