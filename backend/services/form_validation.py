"""
Form Validation - Required-field and required-document checks.

A required field only needs an answer.
Whitespace-only text counts as answered and email/phone formats are not
checked beyond the input type hint.

validate_step() gates the wizard's Continue button; validate_all() gates
submission. Both return booleans and never raise.
"""
from typing import Any, Dict, Iterable, List, Mapping

from models.intake_forms import FieldType, FormField, FormTemplate


def is_answer_satisfied(field: FormField, value: Any) -> bool:
    """True when a value counts as an answer for a required field."""
    if field.type == FieldType.CHECKBOX:
        # A required single checkbox must be explicitly ticked
        return value is True
    if field.type == FieldType.CHECKBOX_GROUP:
        return isinstance(value, list) and len(value) > 0
    if value is None or value == "" or value == []:
        return False
    return True


def _section_satisfied(fields: Iterable[FormField], values: Mapping[str, Any]) -> bool:
    for field in fields:
        if field.required and not is_answer_satisfied(field, values.get(field.id)):
            return False
    return True


def validate_step(template: FormTemplate, values: Mapping[str, Any], step_index: int) -> bool:
    """
    Check the required fields of one wizard step.

    The document step (index == number of sections) is not gated here;
    documents are only checked by validate_all() at submit time.
    """
    if step_index < 0 or step_index >= template.step_count:
        return True
    return _section_satisfied(template.sections[step_index].fields, values)


def validate_all(
    template: FormTemplate,
    values: Mapping[str, Any],
    attached_document_ids: Iterable[str],
) -> bool:
    """Every required field answered and every required document attached."""
    if not _section_satisfied(template.all_fields(), values):
        return False
    attached = set(attached_document_ids)
    return all(doc.id in attached for doc in template.required_documents if doc.required)


def missing_required_fields(template: FormTemplate, values: Mapping[str, Any]) -> List[Dict[str, str]]:
    """Unanswered required fields as [{field_key, message}]."""
    errors = []
    for field in template.all_fields():
        if field.required and not is_answer_satisfied(field, values.get(field.id)):
            errors.append({
                "field_key": field.id,
                "message": f"{field.label} is required",
            })
    return errors


def missing_required_documents(
    template: FormTemplate,
    attached_document_ids: Iterable[str],
) -> List[Dict[str, str]]:
    """Required documents without an attachment as [{document_id, message}]."""
    attached = set(attached_document_ids)
    return [
        {"document_id": doc.id, "message": f"{doc.name} is required"}
        for doc in template.required_documents
        if doc.required and doc.id not in attached
    ]
