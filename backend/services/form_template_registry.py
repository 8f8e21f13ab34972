"""
Form Template Registry - Built-in quick-start templates and template resolution.

Brokers either send a link bound to a custom template built in the form
builder, or one of three quick-start templates:
1. Real estate buyer intake
2. Life insurance application
3. Mortgage pre-qualification

resolve_template() turns whatever the template fetch returned into a
FormTemplate. It never fails: a broken or missing template still yields a
submittable identity-only form so the client is never stuck.
"""
from typing import Any, Dict, List, Optional, Type, TypeVar
from pydantic import BaseModel, ValidationError
import logging

from models.intake_forms import (
    FieldType,
    FormField,
    FormSection,
    FormTemplate,
    RequiredDocument,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# ============================================================================
# TEMPLATE KEYS
# ============================================================================

QUICK_REAL_ESTATE = "quick-real-estate"
QUICK_LIFE_INSURANCE = "quick-life-insurance"
QUICK_MORTGAGE = "quick-mortgage"
GENERIC_TEMPLATE_ID = "generic"

# Builder category names are accepted as aliases of the quick-start keys
FORM_TYPE_ALIASES: Dict[str, str] = {
    "real-estate": QUICK_REAL_ESTATE,
    "life-insurance": QUICK_LIFE_INSURANCE,
    "mortgage": QUICK_MORTGAGE,
}

CUSTOM_FIELDS_SECTION_ID = "custom-fields"


# ============================================================================
# UNIVERSAL PERSONAL INFORMATION (Every Template)
# ============================================================================

PERSONAL_INFO_SECTION = FormSection(
    id="personal-info",
    title="Personal Information",
    description="Please provide your basic contact information",
    fields=[
        FormField(id="full_name", type=FieldType.TEXT, label="Full Legal Name",
                  placeholder="Enter your full name", required=True),
        FormField(id="email", type=FieldType.EMAIL, label="Email Address",
                  placeholder="your@email.com", required=True),
        FormField(id="phone", type=FieldType.TEL, label="Phone Number",
                  placeholder="+1 (555) 000-0000", required=True),
        FormField(id="date_of_birth", type=FieldType.DATE, label="Date of Birth", required=True),
        FormField(id="address", type=FieldType.TEXT, label="Current Address",
                  placeholder="Street address, City, State, ZIP", required=True),
    ],
)

GOVT_ID_DOCUMENT = RequiredDocument(
    id="govt_id",
    name="Government-Issued ID",
    description="Driver's license, passport, or state ID",
    required=True,
)


# ============================================================================
# QUICK-START: REAL ESTATE
# ============================================================================

REAL_ESTATE_SECTIONS: List[FormSection] = [
    PERSONAL_INFO_SECTION,
    FormSection(
        id="property-preferences",
        title="Property Preferences",
        description="Tell us about your ideal property",
        fields=[
            FormField(id="property_type", type=FieldType.CHECKBOX_GROUP, label="Property Type",
                      options=["Single Family Home", "Condo", "Townhouse", "Multi-Family", "Land"],
                      required=True),
            FormField(id="budget_min", type=FieldType.NUMBER, label="Minimum Budget ($)",
                      placeholder="e.g., 200000", required=True),
            FormField(id="budget_max", type=FieldType.NUMBER, label="Maximum Budget ($)",
                      placeholder="e.g., 500000", required=True),
            FormField(id="bedrooms", type=FieldType.SELECT, label="Bedrooms",
                      options=["1", "2", "3", "4", "5+"], required=True),
            FormField(id="bathrooms", type=FieldType.SELECT, label="Bathrooms",
                      options=["1", "1.5", "2", "2.5", "3+"], required=True),
            FormField(id="preferred_locations", type=FieldType.TEXTAREA,
                      label="Preferred Locations/Neighborhoods",
                      placeholder="List your preferred areas..."),
        ],
    ),
    FormSection(
        id="timeline-financing",
        title="Timeline & Financing",
        description="Your buying timeline and financing details",
        fields=[
            FormField(id="timeline", type=FieldType.SELECT, label="When are you looking to buy?",
                      options=["Immediately", "1-3 months", "3-6 months", "6-12 months", "Just browsing"],
                      required=True),
            FormField(id="pre_approved", type=FieldType.CHECKBOX,
                      label="I am pre-approved for a mortgage"),
            FormField(id="first_time_buyer", type=FieldType.CHECKBOX,
                      label="I am a first-time homebuyer"),
            FormField(id="additional_notes", type=FieldType.TEXTAREA, label="Additional Notes",
                      placeholder="Any other information you'd like to share..."),
        ],
    ),
]

REAL_ESTATE_DOCUMENTS: List[RequiredDocument] = [
    GOVT_ID_DOCUMENT,
    RequiredDocument(id="pre_approval", name="Pre-Approval Letter",
                     description="Mortgage pre-approval letter (if available)"),
    RequiredDocument(id="proof_of_funds", name="Proof of Funds",
                     description="Bank statements or proof of down payment funds"),
]


# ============================================================================
# QUICK-START: LIFE INSURANCE
# ============================================================================

LIFE_INSURANCE_SECTIONS: List[FormSection] = [
    PERSONAL_INFO_SECTION,
    FormSection(
        id="health-info",
        title="Health Information",
        description="Basic health details for insurance assessment",
        fields=[
            FormField(id="height", type=FieldType.TEXT, label="Height",
                      placeholder="e.g., 5'10\"", required=True),
            FormField(id="weight", type=FieldType.NUMBER, label="Weight (lbs)",
                      placeholder="e.g., 170", required=True),
            FormField(id="smoker", type=FieldType.CHECKBOX,
                      label="I am a smoker or use tobacco products"),
            FormField(id="health_conditions", type=FieldType.TEXTAREA,
                      label="Pre-existing Health Conditions",
                      placeholder="List any health conditions..."),
            FormField(id="medications", type=FieldType.TEXTAREA, label="Current Medications",
                      placeholder="List any medications..."),
        ],
    ),
    FormSection(
        id="coverage-details",
        title="Coverage Details",
        description="Your insurance coverage preferences",
        fields=[
            FormField(id="coverage_amount", type=FieldType.SELECT, label="Desired Coverage Amount",
                      options=["$100,000", "$250,000", "$500,000", "$1,000,000", "$2,000,000+"],
                      required=True),
            FormField(id="coverage_type", type=FieldType.CHECKBOX_GROUP, label="Coverage Type",
                      options=["Term Life", "Whole Life", "Universal Life", "Not Sure"],
                      required=True),
            FormField(id="beneficiaries", type=FieldType.TEXTAREA, label="Beneficiaries",
                      placeholder="List your beneficiaries and relationship...", required=True),
        ],
    ),
]

LIFE_INSURANCE_DOCUMENTS: List[RequiredDocument] = [
    GOVT_ID_DOCUMENT,
    RequiredDocument(id="medical_records", name="Medical Records",
                     description="Recent medical exam or doctor's report (if available)"),
    RequiredDocument(id="current_policy", name="Current Insurance Policy",
                     description="Existing life insurance policy details (if any)"),
]


# ============================================================================
# QUICK-START: MORTGAGE
# ============================================================================

MORTGAGE_SECTIONS: List[FormSection] = [
    PERSONAL_INFO_SECTION,
    FormSection(
        id="employment-info",
        title="Employment Information",
        description="Your current employment details",
        fields=[
            FormField(id="employer", type=FieldType.TEXT, label="Current Employer",
                      placeholder="Company name", required=True),
            FormField(id="job_title", type=FieldType.TEXT, label="Job Title",
                      placeholder="Your position", required=True),
            FormField(id="years_employed", type=FieldType.NUMBER, label="Years at Current Job",
                      placeholder="e.g., 3", required=True),
            FormField(id="annual_income", type=FieldType.NUMBER, label="Annual Income ($)",
                      placeholder="e.g., 75000", required=True),
            FormField(id="employment_type", type=FieldType.SELECT, label="Employment Type",
                      options=["Full-time", "Part-time", "Self-employed", "Contract", "Retired"],
                      required=True),
        ],
    ),
    FormSection(
        id="loan-details",
        title="Loan Details",
        description="Details about the mortgage you're seeking",
        fields=[
            FormField(id="loan_type", type=FieldType.CHECKBOX_GROUP, label="Loan Type",
                      options=["Purchase", "Refinance", "Cash-out Refinance", "Home Equity"],
                      required=True),
            FormField(id="property_value", type=FieldType.NUMBER,
                      label="Property Value/Purchase Price ($)",
                      placeholder="e.g., 350000", required=True),
            FormField(id="down_payment", type=FieldType.NUMBER, label="Down Payment ($)",
                      placeholder="e.g., 70000", required=True),
            FormField(id="credit_score", type=FieldType.SELECT, label="Estimated Credit Score",
                      options=["Excellent (750+)", "Good (700-749)", "Fair (650-699)",
                               "Below 650", "Not Sure"],
                      required=True),
        ],
    ),
]

MORTGAGE_DOCUMENTS: List[RequiredDocument] = [
    GOVT_ID_DOCUMENT,
    RequiredDocument(id="pay_stubs", name="Recent Pay Stubs",
                     description="Last 2-3 months of pay stubs", required=True),
    RequiredDocument(id="tax_returns", name="Tax Returns",
                     description="Last 2 years of tax returns", required=True),
    RequiredDocument(id="bank_statements", name="Bank Statements",
                     description="Last 2-3 months of bank statements", required=True),
    RequiredDocument(id="w2_forms", name="W-2 Forms",
                     description="Last 2 years of W-2 forms", required=True),
]


# ============================================================================
# BUILT-IN REGISTRY
# ============================================================================

BUILTIN_TEMPLATES: Dict[str, Dict[str, Any]] = {
    QUICK_REAL_ESTATE: {
        "name": "Real Estate Buyer Intake",
        "sections": REAL_ESTATE_SECTIONS,
        "documents": REAL_ESTATE_DOCUMENTS,
    },
    QUICK_LIFE_INSURANCE: {
        "name": "Life Insurance Application",
        "sections": LIFE_INSURANCE_SECTIONS,
        "documents": LIFE_INSURANCE_DOCUMENTS,
    },
    QUICK_MORTGAGE: {
        "name": "Mortgage Application",
        "sections": MORTGAGE_SECTIONS,
        "documents": MORTGAGE_DOCUMENTS,
    },
}

GENERIC_TEMPLATE: Dict[str, Any] = {
    "name": "Client Intake",
    "sections": [PERSONAL_INFO_SECTION],
    "documents": [GOVT_ID_DOCUMENT],
}


def normalize_form_type(form_type: Any) -> Optional[str]:
    """Map a form type or builder category onto a quick-start key, if any."""
    if not isinstance(form_type, str):
        return None
    key = form_type.strip().lower()
    key = FORM_TYPE_ALIASES.get(key, key)
    return key if key in BUILTIN_TEMPLATES else None


def get_builtin_definition(form_type: Any) -> Dict[str, Any]:
    """Built-in definition for a form type, the generic one when unknown."""
    key = normalize_form_type(form_type)
    if key is None:
        return GENERIC_TEMPLATE
    return BUILTIN_TEMPLATES[key]


def get_builtin_template(form_type: Any) -> FormTemplate:
    """Fresh FormTemplate for a quick-start key (generic when unknown)."""
    key = normalize_form_type(form_type)
    definition = get_builtin_definition(key)
    return FormTemplate(
        id=key or GENERIC_TEMPLATE_ID,
        name=definition["name"],
        form_type=key,
        sections=[s.model_copy(deep=True) for s in definition["sections"]],
        required_documents=[d.model_copy(deep=True) for d in definition["documents"]],
    )


def list_builtin_templates() -> List[Dict[str, Any]]:
    """Summary of the quick-start templates for pickers and link creation."""
    summaries = []
    for key, definition in BUILTIN_TEMPLATES.items():
        sections = definition["sections"]
        summaries.append({
            "form_type": key,
            "name": definition["name"],
            "sections": [s.id for s in sections],
            "fields_count": sum(len(s.fields) for s in sections),
            "documents_count": len(definition["documents"]),
        })
    return summaries


# ============================================================================
# RESOLUTION
# ============================================================================

def _parse_items(model: Type[ModelT], items: Any, kind: str) -> List[ModelT]:
    """Validate each entry on its own; malformed entries are dropped."""
    if not isinstance(items, list):
        return []
    parsed = []
    for index, item in enumerate(items):
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {kind} at index {index}: {e.error_count()} error(s)")
    return parsed


def _parse_sections(items: Any) -> List[FormSection]:
    """
    Validate sections with their fields parsed one by one.

    A bad or repeated field only loses that field, not its whole section.
    """
    if not isinstance(items, list):
        return []
    sections = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning(f"Skipping malformed section at index {index}: not an object")
            continue
        try:
            section = FormSection.model_validate({**item, "fields": []})
        except ValidationError as e:
            logger.warning(f"Skipping malformed section at index {index}: {e.error_count()} error(s)")
            continue
        section.fields = _dedupe_fields(_parse_items(FormField, item.get("fields"), "field"), set())
        sections.append(section)
    return sections


def _extract_custom_definition(raw_template_data: Any) -> Optional[Dict[str, Any]]:
    """
    Find the builder output inside the fetched data.

    The builder stores its output as a single-element list:
        [{"baseSections": [...], "customFields": [...], "requiredDocuments": [...]}]
    which the template fetch returns under "form_template_data".
    """
    candidate = raw_template_data
    if isinstance(candidate, dict) and "form_template_data" in candidate:
        candidate = candidate["form_template_data"]
    if isinstance(candidate, list):
        candidate = candidate[0] if candidate else None
    if isinstance(candidate, dict) and any(
        key in candidate for key in ("baseSections", "customFields", "requiredDocuments")
    ):
        return candidate
    return None


def _extract_form_type(template_id: Optional[str], raw_template_data: Any) -> Optional[str]:
    if isinstance(raw_template_data, dict):
        form_type = raw_template_data.get("form_type") or raw_template_data.get("formType")
        if isinstance(form_type, str) and form_type:
            return form_type
    if normalize_form_type(template_id):
        return template_id
    return None


def resolve_template(template_id: Optional[str], raw_template_data: Any) -> FormTemplate:
    """
    Resolve fetched template data into a concrete FormTemplate.

    Order of preference:
    1. Custom definition: base sections + an "Additional Information" section
       wrapping the custom fields, with the custom document list
    2. Built-in quick-start template for the form type
    3. Generic identity-only template with a government ID document

    Each half (sections, documents) falls back independently, so a custom
    template without documents still gets the built-in checklist.
    """
    form_type = _extract_form_type(template_id, raw_template_data)
    builtin = get_builtin_template(form_type)
    custom = _extract_custom_definition(raw_template_data)

    if custom is None:
        logger.info(f"Resolved template {template_id or '-'} to built-in {builtin.id}")
        return builtin

    sections = _parse_sections(custom.get("baseSections"))
    custom_fields = _parse_items(FormField, custom.get("customFields"), "custom field")
    documents = _parse_items(RequiredDocument, custom.get("requiredDocuments"), "document")

    # Answers share one flat map, so ids must be unique across the whole form
    seen_ids = set()
    for section in sections:
        section.fields = _dedupe_fields(section.fields, seen_ids)
    custom_fields = _dedupe_fields(custom_fields, seen_ids)

    if custom_fields:
        sections.append(FormSection(
            id=CUSTOM_FIELDS_SECTION_ID,
            title="Additional Information",
            description="Please provide the following additional details",
            fields=custom_fields,
        ))

    name = raw_template_data.get("form_name") if isinstance(raw_template_data, dict) else None

    template = FormTemplate(
        id=template_id if isinstance(template_id, str) and template_id else builtin.id,
        name=name if isinstance(name, str) and name else builtin.name,
        form_type=builtin.form_type,
        is_custom=bool(sections or documents),
        sections=sections or builtin.sections,
        required_documents=documents or builtin.required_documents,
    )
    logger.info(
        f"Resolved custom template {template.id}: {len(template.sections)} sections, "
        f"{len(template.required_documents)} documents"
    )
    return template


def _dedupe_fields(fields: List[FormField], seen: set) -> List[FormField]:
    unique = []
    for field in fields:
        if field.id in seen:
            logger.warning(f"Dropping duplicate field id '{field.id}'")
            continue
        seen.add(field.id)
        unique.append(field)
    return unique
