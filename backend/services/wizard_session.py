"""
Wizard Session - Step-by-step form filling for one access token.

Steps: [section 1, ..., section N, document upload]. The upload step has
index N and is not a section.

State changes go through reduce(template, state, event), a pure function
returning a new AnswerState. WizardController owns one session: it holds
the template and the current state, dispatches events, and performs the
template fetch and the single submit call through an IntakeGateway.

Session phases:
    UNAVAILABLE  template fetch failed, nothing can be done (terminal)
    FILLING      walking the steps
    SUBMITTED    submission accepted (terminal, no further changes)
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel

from models.intake_forms import AnswerState, AttachedFile, FieldType, FormTemplate
from services.form_rendering import describe_step, document_checklist
from services.form_template_registry import resolve_template
from services.form_validation import validate_all, validate_step
from services.intake_gateway import IntakeGateway, IntakeGatewayError, GENERIC_SUBMIT_ERROR
from services.submission_assembler import assemble

logger = logging.getLogger(__name__)

LINK_UNAVAILABLE_MESSAGE = "This form link is not available"
SUBMITTED_MESSAGE = "Form submitted successfully"


class WizardPhase(str, Enum):
    UNAVAILABLE = "unavailable"
    FILLING = "filling"
    SUBMITTED = "submitted"


# ============================================================================
# EVENTS
# ============================================================================

class SetAnswer(BaseModel):
    field_id: str
    value: Any = None


class ToggleOption(BaseModel):
    field_id: str
    option: str
    checked: bool


class AttachFile(BaseModel):
    file: AttachedFile


class RemoveFile(BaseModel):
    document_id: str


class Advance(BaseModel):
    pass


class Retreat(BaseModel):
    pass


WizardEvent = Union[SetAnswer, ToggleOption, AttachFile, RemoveFile, Advance, Retreat]


# ============================================================================
# REDUCER
# ============================================================================

def _ordered_selection(selected: List[str], options: Optional[List[str]]) -> List[str]:
    """Deduplicate and sort a selection by option order."""
    if not options:
        return list(dict.fromkeys(selected))
    chosen = set(selected)
    return [option for option in options if option in chosen]


def _coerce_answer(template: FormTemplate, field_id: str, value: Any) -> Any:
    field = template.get_field(field_id)
    if field is None:
        # Answers without a field keep a JSON-safe shape
        if isinstance(value, (bool, str)):
            return value
        if isinstance(value, (list, tuple, set)):
            return [str(v) for v in value]
        return "" if value is None else str(value)
    if field.type == FieldType.CHECKBOX:
        if isinstance(value, str):
            return value.strip().lower() in ("yes", "true", "on", "1")
        return bool(value)
    if field.type == FieldType.CHECKBOX_GROUP:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return _ordered_selection([str(v) for v in value], field.options)
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def reduce(template: FormTemplate, state: AnswerState, event: WizardEvent) -> AnswerState:
    """Apply one event and return the resulting state. Never mutates ``state``."""
    last_step = template.step_count

    if isinstance(event, Advance):
        if not validate_step(template, state.values, state.current_step):
            return state
        return state.model_copy(update={"current_step": min(state.current_step + 1, last_step)})

    if isinstance(event, Retreat):
        return state.model_copy(update={"current_step": max(0, state.current_step - 1)})

    if isinstance(event, SetAnswer):
        values = dict(state.values)
        values[event.field_id] = _coerce_answer(template, event.field_id, event.value)
        return state.model_copy(update={"values": values})

    if isinstance(event, ToggleOption):
        field = template.get_field(event.field_id)
        if field is None or field.type != FieldType.CHECKBOX_GROUP:
            logger.warning(f"Ignoring option toggle on non checkbox_group field '{event.field_id}'")
            return state
        current = state.values.get(event.field_id)
        selected = list(current) if isinstance(current, list) else []
        if event.checked:
            selected.append(event.option)
        else:
            selected = [v for v in selected if v != event.option]
        values = dict(state.values)
        values[event.field_id] = _ordered_selection(selected, field.options)
        return state.model_copy(update={"values": values})

    if isinstance(event, AttachFile):
        files = dict(state.files)
        files.pop(event.file.document_id, None)
        files[event.file.document_id] = event.file
        return state.model_copy(update={"files": files})

    if isinstance(event, RemoveFile):
        files = {k: v for k, v in state.files.items() if k != event.document_id}
        return state.model_copy(update={"files": files})

    raise TypeError(f"Unsupported wizard event: {type(event).__name__}")


# ============================================================================
# CONTROLLER
# ============================================================================

class WizardController:
    """One form-filling session bound to an access token."""

    def __init__(
        self,
        gateway: IntakeGateway,
        token: str,
        template: Optional[FormTemplate],
        state: Optional[AnswerState] = None,
        phase: WizardPhase = WizardPhase.FILLING,
        status_message: Optional[str] = None,
        record: Optional[Dict[str, Any]] = None,
    ):
        self.gateway = gateway
        self.token = token
        self.template = template
        self.state = state or AnswerState()
        self.phase = phase
        self.status_message = status_message
        self.record = record or {}
        self.is_submitting = False

    @classmethod
    async def open(cls, gateway: IntakeGateway, token: str) -> "WizardController":
        """Fetch and resolve the template for a token."""
        try:
            record = await gateway.fetch_template(token)
        except IntakeGatewayError as e:
            logger.info(f"Form link unavailable: {e.message}")
            return cls(
                gateway,
                token,
                template=None,
                phase=WizardPhase.UNAVAILABLE,
                status_message=e.message or LINK_UNAVAILABLE_MESSAGE,
            )
        template = resolve_template(record.get("form_template_id"), record)
        return cls(gateway, token, template, record=record)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def step_count(self) -> int:
        return self.template.step_count if self.template else 0

    @property
    def current_step(self) -> int:
        return self.state.current_step

    @property
    def is_document_step(self) -> bool:
        return self.template is not None and self.current_step == self.step_count

    @property
    def current_section(self):
        if self.template is None or self.is_document_step:
            return None
        return self.template.sections[self.current_step]

    @property
    def progress_percent(self) -> float:
        return (self.current_step + 1) / (self.step_count + 1) * 100

    @property
    def can_advance(self) -> bool:
        return (
            self.phase == WizardPhase.FILLING
            and not self.is_document_step
            and validate_step(self.template, self.state.values, self.current_step)
        )

    @property
    def can_submit(self) -> bool:
        return (
            self.phase == WizardPhase.FILLING
            and not self.is_submitting
            and validate_all(self.template, self.state.values, self.state.attached_document_ids())
        )

    def view(self) -> Dict[str, Any]:
        """Renderer view of the current step plus session flags."""
        view = {
            "phase": self.phase.value,
            "status_message": self.status_message,
            "is_submitting": self.is_submitting,
        }
        if self.template is not None:
            view["step"] = describe_step(self.template, self.state)
            view["progress_percent"] = self.progress_percent
            view["can_advance"] = self.can_advance
            view["can_submit"] = self.can_submit
        return view

    def documents(self) -> List[Dict[str, Any]]:
        if self.template is None:
            return []
        return document_checklist(self.template, self.state)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def dispatch(self, event: WizardEvent) -> AnswerState:
        if self.phase != WizardPhase.FILLING:
            logger.warning(f"Ignoring {type(event).__name__}: session is {self.phase.value}")
            return self.state
        self.state = reduce(self.template, self.state, event)
        return self.state

    def set_answer(self, field_id: str, value: Any) -> None:
        self.dispatch(SetAnswer(field_id=field_id, value=value))

    def toggle_option(self, field_id: str, option: str, checked: bool) -> None:
        self.dispatch(ToggleOption(field_id=field_id, option=option, checked=checked))

    def attach_file(self, document_id: str, name: str, content: bytes,
                    content_type: str = "application/octet-stream") -> None:
        self.dispatch(AttachFile(file=AttachedFile(
            document_id=document_id,
            name=name,
            content=content,
            content_type=content_type,
        )))

    def remove_file(self, document_id: str) -> None:
        self.dispatch(RemoveFile(document_id=document_id))

    def advance(self) -> bool:
        """Move forward one step; returns False when blocked or already last."""
        before = self.current_step
        self.dispatch(Advance())
        return self.current_step != before

    def retreat(self) -> bool:
        before = self.current_step
        self.dispatch(Retreat())
        return self.current_step != before

    async def submit(self) -> bool:
        """
        Submit the session once. Returns True when the endpoint accepted it.

        Nothing is sent while the form is incomplete or a submission is
        already in flight. Failures keep the answers for a manual retry.
        """
        if not self.can_submit:
            return False

        self.is_submitting = True
        self.status_message = None
        try:
            payload = assemble(self.state, self.token)
            await self.gateway.submit(self.token, payload)
        except IntakeGatewayError as e:
            self.status_message = e.message or GENERIC_SUBMIT_ERROR
            logger.info(f"Submission failed, session kept for retry: {self.status_message}")
            return False
        except Exception as e:
            self.status_message = GENERIC_SUBMIT_ERROR
            logger.error(f"Unexpected submission error: {e}", exc_info=True)
            return False
        finally:
            self.is_submitting = False

        self.phase = WizardPhase.SUBMITTED
        self.status_message = SUBMITTED_MESSAGE
        logger.info(f"Form submitted with {len(self.state.files)} documents")
        return True
