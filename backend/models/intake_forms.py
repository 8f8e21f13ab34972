"""
Intake Forms - Schema model for broker intake forms.

A form template is an ordered list of sections, each holding ordered fields,
plus a parallel checklist of required documents. Answers for every field of
a template live in one flat map keyed by field id.

Field types map onto a closed set of widget kinds (see FIELD_WIDGETS). That
mapping is the only contract a renderer has to honour.
"""
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Dict, List, Optional, Union
from enum import Enum


# ============================================================================
# FIELD TYPES
# ============================================================================

class FieldType(str, Enum):
    TEXT = "text"
    TEL = "tel"
    EMAIL = "email"
    TEXTAREA = "textarea"
    CHECKBOX = "checkbox"              # Single yes/no toggle, answer is a bool
    CHECKBOX_GROUP = "checkbox_group"  # Multi-choice, answer is a list of options
    DATE = "date"
    NUMBER = "number"
    SELECT = "select"                  # Single choice from options


class WidgetKind(str, Enum):
    SINGLE_LINE = "single_line"
    MULTI_LINE = "multi_line"
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    TOGGLE = "toggle"


FIELD_WIDGETS: Dict[FieldType, WidgetKind] = {
    FieldType.TEXT: WidgetKind.SINGLE_LINE,
    FieldType.TEL: WidgetKind.SINGLE_LINE,
    FieldType.EMAIL: WidgetKind.SINGLE_LINE,
    FieldType.NUMBER: WidgetKind.SINGLE_LINE,
    FieldType.DATE: WidgetKind.SINGLE_LINE,
    FieldType.TEXTAREA: WidgetKind.MULTI_LINE,
    FieldType.SELECT: WidgetKind.SINGLE_CHOICE,
    FieldType.CHECKBOX_GROUP: WidgetKind.MULTI_CHOICE,
    FieldType.CHECKBOX: WidgetKind.TOGGLE,
}

# Field types whose options list is mandatory
OPTION_FIELD_TYPES = {FieldType.SELECT, FieldType.CHECKBOX_GROUP}


def widget_for(field_type: FieldType) -> WidgetKind:
    """Widget capability a renderer must provide for a field type."""
    return FIELD_WIDGETS[FieldType(field_type)]


# ============================================================================
# SCHEMA MODELS
# ============================================================================

class FormField(BaseModel):
    """Single question inside a form section."""
    model_config = ConfigDict(extra="ignore")

    id: str
    label: str
    type: FieldType
    placeholder: Optional[str] = None
    options: Optional[List[str]] = None  # For select/checkbox_group
    required: bool = False

    @model_validator(mode="after")
    def _check_options(self):
        if self.type in OPTION_FIELD_TYPES and not self.options:
            raise ValueError(f"Field '{self.id}' of type {self.type.value} needs at least one option")
        return self

    @property
    def widget(self) -> WidgetKind:
        return widget_for(self.type)


class FormSection(BaseModel):
    """Titled group of fields shown together as one wizard step."""
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    description: Optional[str] = None
    fields: List[FormField] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_field_ids(self):
        seen = set()
        for field in self.fields:
            if field.id in seen:
                raise ValueError(f"Duplicate field id '{field.id}' in section '{self.id}'")
            seen.add(field.id)
        return self


class RequiredDocument(BaseModel):
    """Checklist entry for a document the client uploads."""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    description: str = ""
    required: bool = False


class FormTemplate(BaseModel):
    """Concrete form: ordered sections plus the document checklist."""
    id: str
    name: Optional[str] = None
    form_type: Optional[str] = None
    is_custom: bool = False
    sections: List[FormSection] = Field(default_factory=list)
    required_documents: List[RequiredDocument] = Field(default_factory=list)

    @property
    def step_count(self) -> int:
        """Number of section steps; the document step sits at this index."""
        return len(self.sections)

    def all_fields(self) -> List[FormField]:
        return [field for section in self.sections for field in section.fields]

    def get_field(self, field_id: str) -> Optional[FormField]:
        for field in self.all_fields():
            if field.id == field_id:
                return field
        return None

    def get_document(self, document_id: str) -> Optional[RequiredDocument]:
        for doc in self.required_documents:
            if doc.id == document_id:
                return doc
        return None


# ============================================================================
# ANSWER STATE (one form-filling session)
# ============================================================================

AnswerValue = Union[bool, str, List[str]]


class AttachedFile(BaseModel):
    """File picked for a required document, held in memory until submit."""
    document_id: str
    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class AnswerState(BaseModel):
    """
    Mutable-by-replacement state of one wizard session.

    current_step ranges over [0, number of sections]; the last value is the
    document upload step.
    """
    values: Dict[str, AnswerValue] = Field(default_factory=dict)
    files: Dict[str, AttachedFile] = Field(default_factory=dict)
    current_step: int = 0

    def attached_document_ids(self) -> List[str]:
        return list(self.files.keys())
