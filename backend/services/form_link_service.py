"""
Form Link Service - Server side of public form links and onboarding links.

Collections used:
- public_form_links:        shareable links (link_token, broker_id, form_type, limits)
- clients:                  broker clients (onboarding_token, status, form_data)
- brokers:                  broker display details (full_name, email)
- form_templates:           builder output (template_id, name, form_type, fields)
- documents:                metadata of uploaded documents
- public_form_submissions:  one record per public link submission

Template records returned here are what the intake gateways hand to
resolve_template(). Submissions are validated against the same resolved
template before anything is written.
"""
import hashlib
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from database import database
from models.intake_forms import FieldType, FormTemplate
from services.form_template_registry import QUICK_REAL_ESTATE, resolve_template
from services.form_validation import missing_required_documents, missing_required_fields

logger = logging.getLogger(__name__)

DEFAULT_BROKER_NAME = "Your Broker"


class FormLinkError(Exception):
    """Link lookup or submission rejected; rendered as {"error": message}."""

    def __init__(self, message: str, status_code: int = 400, missing: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.missing = missing


class LinkStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


class ClientStatus:
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ============================================================================
# HELPERS
# ============================================================================

def sanitize_filename(filename: str) -> str:
    """Replace anything outside [A-Za-z0-9.-] with '_' and collapse runs."""
    cleaned = re.sub(r"[^a-zA-Z0-9.-]", "_", filename or "")
    return re.sub(r"_+", "_", cleaned) or "upload"


def file_type_for(content_type: Optional[str]) -> str:
    """Bucket a MIME type into pdf / image / doc."""
    content_type = content_type or ""
    if content_type.startswith("image/"):
        return "image"
    if content_type == "application/pdf":
        return "pdf"
    return "doc"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable expires_at value: {value}")
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _check_link_available(link: Dict[str, Any]) -> None:
    if link.get("status") != LinkStatus.ACTIVE:
        raise FormLinkError("This form link is no longer active")

    expires_at = _parse_datetime(link.get("expires_at"))
    if expires_at and expires_at < datetime.now(timezone.utc):
        raise FormLinkError("This form link has expired")

    max_submissions = link.get("max_submissions")
    if max_submissions and link.get("submissions_count", 0) >= max_submissions:
        raise FormLinkError("This form has reached its maximum number of submissions")


async def _get_broker_name(db, broker_id: Optional[str]) -> str:
    if not broker_id:
        return DEFAULT_BROKER_NAME
    broker = await db.brokers.find_one({"broker_id": broker_id}, {"_id": 0, "full_name": 1, "email": 1})
    if not broker:
        return DEFAULT_BROKER_NAME
    return broker.get("full_name") or broker.get("email") or DEFAULT_BROKER_NAME


async def _get_form_template(db, template_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not template_id:
        return None
    return await db.form_templates.find_one(
        {"template_id": template_id},
        {"_id": 0, "name": 1, "form_type": 1, "category": 1, "fields": 1},
    )


def normalize_field_values(template: FormTemplate, field_values: Dict[str, Any]) -> Dict[str, Any]:
    """Accept legacy "yes"/"no" checkbox answers as booleans."""
    normalized = dict(field_values)
    for field in template.all_fields():
        value = normalized.get(field.id)
        if field.type == FieldType.CHECKBOX and isinstance(value, str):
            normalized[field.id] = value.strip().lower() in ("yes", "true", "on", "1")
    return normalized


def _validate_submission(template: FormTemplate, field_values: Dict[str, Any],
                         uploads: List[Dict[str, Any]]) -> None:
    attached = [u["document_id"] for u in uploads]
    missing = missing_required_fields(template, field_values) + missing_required_documents(template, attached)
    if missing:
        logger.info(f"Submission rejected, missing: {[m.get('field_key') or m.get('document_id') for m in missing]}")
        raise FormLinkError("Please complete all required fields and documents", missing=missing)


async def _record_documents(db, uploads: List[Dict[str, Any]], client_id: str,
                            broker_id: Optional[str]) -> List[Dict[str, Any]]:
    """Insert one metadata record per uploaded document."""
    now = datetime.now(timezone.utc)
    records = []
    for upload in uploads:
        content = upload["content"]
        record = {
            "document_id": str(uuid.uuid4()),
            "client_id": client_id,
            "broker_id": broker_id,
            "document_type": upload["document_id"],
            "name": upload["filename"],
            "stored_filename": f"{int(now.timestamp() * 1000)}_{sanitize_filename(upload['filename'])}",
            "content_type": upload.get("content_type"),
            "file_type": file_type_for(upload.get("content_type")),
            "file_size": len(content),
            "sha256_hash": hashlib.sha256(content).hexdigest(),
            "status": "pending",
            "created_at": now,
        }
        await db.documents.insert_one(record)
        record.pop("_id", None)
        records.append(record)
    return records


# ============================================================================
# TEMPLATE LOOKUP
# ============================================================================

async def get_public_form_link(token: str) -> Dict[str, Any]:
    """Template record for a public form link."""
    if not token:
        raise FormLinkError("Token is required")

    db = database.get_db()
    logger.info(f"Looking up public form link token: {token}")

    link = await db.public_form_links.find_one({"link_token": token}, {"_id": 0})
    if not link:
        raise FormLinkError("Invalid or expired form link", status_code=404)

    _check_link_available(link)

    broker_name = await _get_broker_name(db, link.get("broker_id"))

    form_type = link.get("form_type") or QUICK_REAL_ESTATE
    form_name = link.get("form_name")
    form_template_data = None

    form_template = await _get_form_template(db, link.get("form_template_id"))
    if form_template:
        form_name = form_template.get("name")
        if not link.get("form_type"):
            form_type = form_template.get("form_type") or form_template.get("category") or QUICK_REAL_ESTATE
        form_template_data = form_template.get("fields")

    logger.info(f"Returning form type: {form_type}, has template data: {form_template_data is not None}")

    return {
        "id": link.get("link_id"),
        "broker_id": link.get("broker_id"),
        "broker_name": broker_name,
        "title": link.get("title"),
        "description": link.get("description"),
        "form_template_id": link.get("form_template_id"),
        "form_name": form_name,
        "form_type": form_type,
        "form_template_data": form_template_data,
    }


async def get_onboarding_client(token: str) -> Dict[str, Any]:
    """Template record for a per-client onboarding link."""
    if not token:
        raise FormLinkError("Token is required")

    db = database.get_db()
    logger.info(f"Looking up onboarding token: {token}")

    client = await db.clients.find_one({"onboarding_token": token}, {"_id": 0})
    if not client:
        raise FormLinkError("Invalid or expired onboarding link", status_code=404)

    if client.get("status") == ClientStatus.COMPLETED:
        raise FormLinkError("This onboarding has already been completed")

    return await _build_onboarding_record(db, client)


async def _build_onboarding_record(db, client: Dict[str, Any]) -> Dict[str, Any]:
    broker_name = await _get_broker_name(db, client.get("broker_id"))

    # The client's own form type wins over the template's
    form_type = client.get("form_type") or QUICK_REAL_ESTATE
    form_name = None
    form_template_data = None

    form_template = await _get_form_template(db, client.get("form_template_id"))
    if form_template:
        form_name = form_template.get("name")
        if not client.get("form_type"):
            form_type = form_template.get("form_type") or form_template.get("category") or QUICK_REAL_ESTATE
        form_template_data = form_template.get("fields")

    return {
        "id": client.get("client_id"),
        "name": client.get("name"),
        "email": client.get("email"),
        "phone": client.get("phone"),
        "broker_name": broker_name,
        "form_template_id": client.get("form_template_id"),
        "form_name": form_name,
        "form_type": form_type,
        "form_template_data": form_template_data,
    }


# ============================================================================
# SUBMISSIONS
# ============================================================================

async def submit_public_form(token: str, field_values: Dict[str, Any],
                             uploads: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Accept a public form submission.

    Creates a completed client record for the submitter, records the
    uploaded documents and the submission, and counts it against the link.

    uploads: [{document_id, filename, content_type, content}]
    """
    record = await get_public_form_link(token)
    template = resolve_template(record.get("form_template_id"), record)
    field_values = normalize_field_values(template, field_values)
    _validate_submission(template, field_values, uploads)

    db = database.get_db()
    now = datetime.now(timezone.utc)
    client_id = str(uuid.uuid4())
    broker_id = record.get("broker_id")
    submitter_name = field_values.get("full_name") or "Unknown"

    await db.clients.insert_one({
        "client_id": client_id,
        "broker_id": broker_id,
        "name": submitter_name,
        "email": field_values.get("email") or "",
        "phone": field_values.get("phone") or None,
        "status": ClientStatus.COMPLETED,
        "form_type": record.get("form_type"),
        "form_template_id": record.get("form_template_id"),
        "form_data": field_values,
        "onboarding_progress": 100,
        "documents_submitted": len(uploads),
        "documents_required": sum(1 for d in template.required_documents if d.required),
        "notes": "Submitted via public form link",
        "created_at": now,
        "updated_at": now,
    })

    documents = await _record_documents(db, uploads, client_id, broker_id)

    await db.public_form_submissions.insert_one({
        "submission_id": str(uuid.uuid4()),
        "link_token": token,
        "link_id": record.get("id"),
        "broker_id": broker_id,
        "client_id": client_id,
        "submitter_name": submitter_name,
        "submitter_email": field_values.get("email") or "",
        "submitter_phone": field_values.get("phone") or "",
        "form_data": field_values,
        "documents_count": len(documents),
        "status": ClientStatus.COMPLETED,
        "created_at": now,
    })

    await db.public_form_links.update_one(
        {"link_token": token},
        {"$inc": {"submissions_count": 1}},
    )

    logger.info(f"Public form submitted for broker {broker_id}. Documents: {len(documents)}")

    return {
        "success": True,
        "message": "Form submitted successfully",
        "client_id": client_id,
        "documentsProcessed": len(documents),
    }


async def submit_onboarding(token: str, field_values: Dict[str, Any],
                            uploads: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Complete a client's onboarding with their answers and documents."""
    if not token:
        raise FormLinkError("Token is required")

    db = database.get_db()
    client = await db.clients.find_one({"onboarding_token": token}, {"_id": 0})
    if not client:
        raise FormLinkError("Invalid onboarding token", status_code=404)
    if client.get("status") == ClientStatus.COMPLETED:
        raise FormLinkError("This onboarding has already been completed")

    record = await _build_onboarding_record(db, client)
    template = resolve_template(record.get("form_template_id"), record)
    field_values = normalize_field_values(template, field_values)
    _validate_submission(template, field_values, uploads)

    client_id = client.get("client_id")
    documents = await _record_documents(db, uploads, client_id, client.get("broker_id"))

    await db.clients.update_one(
        {"client_id": client_id},
        {"$set": {
            "status": ClientStatus.COMPLETED,
            "onboarding_progress": 100,
            "form_data": field_values,
            "documents_submitted": len(documents),
            "documents_required": sum(1 for d in template.required_documents if d.required),
            "updated_at": datetime.now(timezone.utc),
        }},
    )

    logger.info(f"Onboarding completed for client {client_id}. Documents: {len(documents)}")

    return {
        "success": True,
        "message": "Onboarding completed successfully",
        "documentsProcessed": len(documents),
    }
