"""
Form Rendering - Renderer-facing view of a wizard step.

Produces plain dicts describing what to draw: one descriptor per field with
its widget kind and current answer, and the document checklist for the
upload step. Any UI layer (web template, TUI, JSON API) can render from
these without knowing about field types.
"""
from typing import Any, Dict, List, Optional

from models.intake_forms import (
    AnswerState,
    FieldType,
    FormField,
    FormSection,
    FormTemplate,
    WidgetKind,
)

# HTML-style input hint for single-line widgets
INPUT_TYPES = {
    FieldType.TEXT: "text",
    FieldType.TEL: "tel",
    FieldType.EMAIL: "email",
    FieldType.NUMBER: "number",
    FieldType.DATE: "date",
}


def _display_value(field: FormField, value: Any) -> Any:
    widget = field.widget
    if widget == WidgetKind.TOGGLE:
        return value is True
    if widget == WidgetKind.MULTI_CHOICE:
        return list(value) if isinstance(value, list) else []
    return value if isinstance(value, str) else ""


def describe_field(field: FormField, value: Any = None) -> Dict[str, Any]:
    """Widget descriptor for one field with its current answer."""
    descriptor = {
        "field_id": field.id,
        "label": field.label,
        "widget": field.widget.value,
        "required": field.required,
        "placeholder": field.placeholder or "",
        "value": _display_value(field, value),
    }
    if field.widget == WidgetKind.SINGLE_LINE:
        descriptor["input_type"] = INPUT_TYPES[field.type]
    if field.widget in (WidgetKind.SINGLE_CHOICE, WidgetKind.MULTI_CHOICE):
        descriptor["options"] = list(field.options or [])
    return descriptor


def describe_section(section: FormSection, values: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "section_id": section.id,
        "title": section.title,
        "description": section.description or "",
        "fields": [describe_field(f, values.get(f.id)) for f in section.fields],
    }


def document_checklist(template: FormTemplate, state: AnswerState) -> List[Dict[str, Any]]:
    """Required documents with their attachment status, in template order."""
    checklist = []
    for doc in template.required_documents:
        attached = state.files.get(doc.id)
        checklist.append({
            "document_id": doc.id,
            "name": doc.name,
            "description": doc.description,
            "required": doc.required,
            "attached": attached is not None,
            "file_name": attached.name if attached else None,
        })
    return checklist


def describe_step(template: FormTemplate, state: AnswerState, step_index: Optional[int] = None) -> Dict[str, Any]:
    """View of a wizard step: a section, or the document upload step."""
    index = state.current_step if step_index is None else step_index
    if index < template.step_count:
        view = describe_section(template.sections[index], state.values)
        view["kind"] = "section"
    else:
        view = {
            "kind": "documents",
            "title": "Upload Documents",
            "documents": document_checklist(template, state),
        }
    view["step_index"] = index
    view["step_count"] = template.step_count + 1
    return view
