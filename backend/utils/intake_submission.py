"""
Multipart parsing for intake submissions.

Both submit endpoints receive the same body: a `fieldValues` JSON string
and zero or more `document_<id>` file parts.
"""
import json
import logging
from typing import Any, Dict, List, Tuple

from fastapi import Request
from starlette.datastructures import UploadFile

from services.form_link_service import FormLinkError
from services.submission_assembler import (
    DOCUMENT_PART_PREFIX,
    FIELD_VALUES_KEY,
    document_id_from_part,
)

logger = logging.getLogger(__name__)


async def parse_intake_submission(request: Request) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """Return (field_values, uploads) from a submit request body."""
    form = await request.form()

    raw_values = form.get(FIELD_VALUES_KEY) or "{}"
    try:
        field_values = json.loads(raw_values)
    except (TypeError, ValueError):
        logger.warning("Submission with unparseable fieldValues")
        raise FormLinkError("Invalid form data")
    if not isinstance(field_values, dict):
        raise FormLinkError("Invalid form data")

    # A repeated part for the same document keeps the last file
    uploads: Dict[str, Dict[str, Any]] = {}
    for key, value in form.multi_items():
        if not key.startswith(DOCUMENT_PART_PREFIX) or not isinstance(value, UploadFile):
            continue
        document_id = document_id_from_part(key)
        uploads[document_id] = {
            "document_id": document_id,
            "filename": value.filename or document_id,
            "content_type": value.content_type,
            "content": await value.read(),
        }

    return field_values, list(uploads.values())
