"""
Tests for the wizard reducer and WizardController: step gating, answer
coercion, document attachment, and the single-submit lifecycle.
"""
import asyncio
import json
from datetime import date

import pytest

from models.intake_forms import AnswerState, AttachedFile
from services.form_template_registry import QUICK_MORTGAGE, QUICK_REAL_ESTATE, get_builtin_template
from services.intake_gateway import GENERIC_SUBMIT_ERROR, IntakeGateway, IntakeGatewayError
from services.wizard_session import (
    SUBMITTED_MESSAGE,
    Advance,
    AttachFile,
    RemoveFile,
    Retreat,
    SetAnswer,
    ToggleOption,
    WizardController,
    WizardPhase,
    reduce,
)

PERSONAL_INFO = {
    "full_name": "Jane Doe",
    "email": "jane@example.com",
    "phone": "555-0100",
    "date_of_birth": "1990-01-01",
    "address": "1 Main St",
}

REAL_ESTATE_ANSWERS = {
    **PERSONAL_INFO,
    "property_type": ["Condo"],
    "budget_min": "200000",
    "budget_max": "400000",
    "bedrooms": "2",
    "bathrooms": "2",
    "timeline": "1-3 months",
}


class FakeGateway(IntakeGateway):
    """In-memory gateway recording submit calls."""

    def __init__(self, record=None, fetch_error=None, submit_error=None, submit_delay=0):
        self.record = record if record is not None else {"form_type": QUICK_REAL_ESTATE}
        self.fetch_error = fetch_error
        self.submit_error = submit_error
        self.submit_delay = submit_delay
        self.submissions = []

    async def fetch_template(self, token):
        if self.fetch_error:
            raise IntakeGatewayError(self.fetch_error, 400)
        return self.record

    async def submit(self, token, payload):
        self.submissions.append(payload)
        if self.submit_delay:
            await asyncio.sleep(self.submit_delay)
        if self.submit_error:
            raise IntakeGatewayError(self.submit_error, 400)
        return {"success": True}


def _filled_controller(gateway=None):
    template = get_builtin_template(QUICK_REAL_ESTATE)
    controller = WizardController(gateway or FakeGateway(), "tok", template)
    for field_id, value in REAL_ESTATE_ANSWERS.items():
        controller.set_answer(field_id, value)
    controller.attach_file("govt_id", "id.pdf", b"%PDF-1.4", "application/pdf")
    return controller


# ============================================================================
# REDUCER
# ============================================================================

class TestReduce:

    @pytest.fixture
    def template(self):
        return get_builtin_template(QUICK_REAL_ESTATE)

    def test_advance_blocked_until_required_fields_answered(self, template):
        state = AnswerState()
        assert reduce(template, state, Advance()).current_step == 0

        state = reduce(template, state, SetAnswer(field_id="full_name", value="Jane"))
        assert reduce(template, state, Advance()).current_step == 0

        for field_id, value in PERSONAL_INFO.items():
            state = reduce(template, state, SetAnswer(field_id=field_id, value=value))
        assert reduce(template, state, Advance()).current_step == 1

    def test_reduce_does_not_mutate_input(self, template):
        state = AnswerState()
        reduce(template, state, SetAnswer(field_id="full_name", value="Jane"))
        assert state.values == {}

    def test_retreat_floors_at_zero(self, template):
        state = reduce(template, AnswerState(), Retreat())
        assert state.current_step == 0

    def test_advance_clamps_at_document_step(self, template):
        state = AnswerState(current_step=template.step_count)
        assert reduce(template, state, Advance()).current_step == template.step_count

    def test_checkbox_toggles_converge_regardless_of_order(self, template):
        first = AnswerState()
        for option, checked in [("Condo", True), ("Land", True), ("Condo", False), ("Townhouse", True)]:
            first = reduce(template, first, ToggleOption(field_id="property_type", option=option, checked=checked))

        second = AnswerState()
        for option, checked in [("Townhouse", True), ("Condo", True), ("Land", True), ("Condo", False)]:
            second = reduce(template, second, ToggleOption(field_id="property_type", option=option, checked=checked))

        assert first.values["property_type"] == ["Townhouse", "Land"]
        assert first.values["property_type"] == second.values["property_type"]

    def test_toggle_same_option_twice_is_idempotent(self, template):
        state = AnswerState()
        for _ in range(2):
            state = reduce(template, state, ToggleOption(field_id="property_type", option="Condo", checked=True))
        assert state.values["property_type"] == ["Condo"]

    def test_single_checkbox_answers_are_booleans(self, template):
        state = reduce(template, AnswerState(), SetAnswer(field_id="pre_approved", value="yes"))
        assert state.values["pre_approved"] is True
        state = reduce(template, state, SetAnswer(field_id="pre_approved", value=False))
        assert state.values["pre_approved"] is False

    def test_text_answers_are_strings(self, template):
        state = reduce(template, AnswerState(), SetAnswer(field_id="budget_min", value=250000))
        assert state.values["budget_min"] == "250000"

    def test_at_most_one_file_per_document(self, template):
        state = AnswerState()
        for name in ("a.pdf", "b.pdf"):
            state = reduce(template, state, AttachFile(
                file=AttachedFile(document_id="govt_id", name=name, content=b"x"),
            ))
        assert list(state.files) == ["govt_id"]
        assert state.files["govt_id"].name == "b.pdf"

        state = reduce(template, state, RemoveFile(document_id="govt_id"))
        assert state.files == {}

    def test_unknown_event_raises(self, template):
        with pytest.raises(TypeError):
            reduce(template, AnswerState(), object())

    def test_answers_for_unknown_fields_stay_json_safe(self, template):
        state = AnswerState()
        for field_id, value in [("extra_note", date(2024, 1, 1)), ("extra_flag", True),
                                ("extra_tags", ("a", 2)), ("extra_count", 3)]:
            state = reduce(template, state, SetAnswer(field_id=field_id, value=value))

        assert state.values["extra_note"] == "2024-01-01"
        assert state.values["extra_flag"] is True
        assert state.values["extra_tags"] == ["a", "2"]
        assert state.values["extra_count"] == "3"
        json.dumps(state.values)

    def test_toggle_ignored_on_non_group_fields(self, template):
        state = AnswerState(values={"full_name": "Jane"})
        for field_id in ("full_name", "pre_approved", "no_such_field"):
            state = reduce(template, state, ToggleOption(field_id=field_id, option="x", checked=True))
        assert state.values == {"full_name": "Jane"}


# ============================================================================
# CONTROLLER
# ============================================================================

class TestWizardController:

    @pytest.mark.asyncio
    async def test_open_resolves_template(self):
        controller = await WizardController.open(FakeGateway({"form_type": QUICK_MORTGAGE}), "tok")
        assert controller.phase == WizardPhase.FILLING
        assert controller.step_count == 3
        assert controller.current_section.id == "personal-info"

    @pytest.mark.asyncio
    async def test_fetch_failure_makes_session_unavailable(self):
        controller = await WizardController.open(FakeGateway(fetch_error="This form link has expired"), "tok")
        assert controller.phase == WizardPhase.UNAVAILABLE
        assert controller.status_message == "This form link has expired"
        assert controller.template is None
        assert controller.view() == {
            "phase": "unavailable",
            "status_message": "This form link has expired",
            "is_submitting": False,
        }

        controller.set_answer("full_name", "Jane")
        assert controller.state.values == {}
        assert await controller.submit() is False

    def test_progress_percent(self):
        controller = WizardController(FakeGateway(), "tok", get_builtin_template(QUICK_REAL_ESTATE))
        assert controller.progress_percent == 25
        controller.state = controller.state.model_copy(update={"current_step": 3})
        assert controller.progress_percent == 100
        assert controller.is_document_step is True
        assert controller.current_section is None

    def test_advance_and_retreat_report_movement(self):
        controller = _filled_controller()
        assert controller.retreat() is False
        assert controller.advance() is True
        assert controller.advance() is True
        assert controller.advance() is True
        assert controller.is_document_step is True
        assert controller.advance() is False
        assert controller.can_advance is False
        assert controller.retreat() is True

    @pytest.mark.asyncio
    async def test_submit_blocked_without_required_document(self):
        gateway = FakeGateway()
        controller = _filled_controller(gateway)
        controller.remove_file("govt_id")

        assert controller.can_submit is False
        assert await controller.submit() is False
        assert gateway.submissions == []

    @pytest.mark.asyncio
    async def test_successful_submit_is_terminal(self):
        gateway = FakeGateway()
        controller = _filled_controller(gateway)

        assert await controller.submit() is True
        assert controller.phase == WizardPhase.SUBMITTED
        assert controller.status_message == SUBMITTED_MESSAGE
        assert len(gateway.submissions) == 1
        assert [f.document_id for f in gateway.submissions[0].files] == ["govt_id"]

        assert await controller.submit() is False
        controller.set_answer("full_name", "Someone Else")
        assert controller.state.values["full_name"] == "Jane Doe"
        assert len(gateway.submissions) == 1

    @pytest.mark.asyncio
    async def test_rejected_submit_keeps_answers_for_retry(self):
        gateway = FakeGateway(submit_error="Link expired")
        controller = _filled_controller(gateway)
        before = controller.state

        assert await controller.submit() is False
        assert controller.phase == WizardPhase.FILLING
        assert controller.status_message == "Link expired"
        assert controller.state == before
        assert controller.is_submitting is False
        assert controller.can_submit is True

        gateway.submit_error = None
        assert await controller.submit() is True
        assert len(gateway.submissions) == 2

    @pytest.mark.asyncio
    async def test_concurrent_submit_sends_once(self):
        gateway = FakeGateway(submit_delay=0.01)
        controller = _filled_controller(gateway)

        results = await asyncio.gather(controller.submit(), controller.submit())
        assert sorted(results) == [False, True]
        assert len(gateway.submissions) == 1

    @pytest.mark.asyncio
    async def test_unknown_field_answer_is_submitted(self):
        gateway = FakeGateway()
        controller = _filled_controller(gateway)
        controller.set_answer("extra_note", date(2024, 1, 1))

        assert await controller.submit() is True
        assert json.loads(gateway.submissions[0].field_values)["extra_note"] == "2024-01-01"

    @pytest.mark.asyncio
    async def test_unexpected_submit_error_keeps_session(self):
        class BrokenGateway(FakeGateway):
            async def submit(self, token, payload):
                self.submissions.append(payload)
                raise RuntimeError("connection pool exhausted")

        gateway = BrokenGateway()
        controller = _filled_controller(gateway)

        assert await controller.submit() is False
        assert controller.phase == WizardPhase.FILLING
        assert controller.status_message == GENERIC_SUBMIT_ERROR
        assert controller.is_submitting is False
        assert controller.state.values["full_name"] == "Jane Doe"
        assert controller.can_submit is True

    def test_view_of_filling_session(self):
        controller = _filled_controller()
        view = controller.view()
        assert view["phase"] == "filling"
        assert view["step"]["section_id"] == "personal-info"
        assert view["can_advance"] is True
        assert view["can_submit"] is True
        assert controller.documents()[0]["attached"] is True
