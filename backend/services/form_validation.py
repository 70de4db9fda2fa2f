"""
Field validation for the boat details step

Validators return an error message, empty string means the value is fine
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Type

from domain.models import BoatType, EngineType, FormState, HullMaterial, ServiceType

MIN_YEAR = 1900

# dropdown fields and the values they accept
CHOICE_FIELDS: Dict[str, Type[Enum]] = {
    "service_type": ServiceType,
    "boat_type": BoatType,
    "engine_type": EngineType,
    "hull_material": HullMaterial,
}

# minimum lengths for free text fields
FIELD_MIN_LENGTHS = {
    "boat_make": 2,
    "boat_model": 2,
    "engine_model": 2,
    "problem_description": 10,
    "service_description": 5,
}

# caps the repair API enforces
FIELD_MAX_LENGTHS = {
    "problem_description": 1000,
    "service_description": 500,
    "customer_notes": 500,
}

# only validated when the customer typed something
OPTIONAL_TEXT_FIELDS = ("engine_model", "service_description")

FIELD_LABELS = {
    "service_type": "Service type",
    "boat_type": "Boat type",
    "boat_make": "Boat make",
    "boat_model": "Boat model",
    "boat_year": "Boat year",
    "engine_model": "Engine model",
    "problem_description": "Problem description",
    "service_description": "Service description",
    "customer_notes": "Customer notes",
}


def validate_year(year: Optional[str], current_year: Optional[int] = None) -> str:
    current_year = current_year or datetime.now().year
    year = (year or "").strip()

    if not year:
        return "Year is required"
    # isdigit alone lets through things like "²" that int() can't parse
    if not (year.isascii() and year.isdigit()):
        return "Please enter a valid year"
    if len(year) != 4:
        return "Year must be exactly 4 digits"
    if int(year) < MIN_YEAR:
        return "Year cannot be before 1900"
    if int(year) > current_year:
        return "Year cannot be in the future"
    return ""


def validate_required(value: Optional[str], field_name: str) -> str:
    if not value or not value.strip():
        return f"{field_name} is required"
    return ""


def validate_max_length(value: Optional[str], field_name: str, max_length: int) -> str:
    if len((value or "").strip()) > max_length:
        return f"{field_name} cannot exceed {max_length} characters"
    return ""


def validate_text_input(
    value: Optional[str], field_name: str, min_length: int, max_length: Optional[int] = None
) -> str:
    if not value or not value.strip():
        return f"{field_name} is required"
    if len(value.strip()) < min_length:
        return f"{field_name} must be at least {min_length} characters"
    if max_length is not None:
        return validate_max_length(value, field_name, max_length)
    return ""


def validate_choice(value: Optional[str], field: str) -> str:
    # empty is handled by validate_required where the field is mandatory
    if not value:
        return ""
    allowed = CHOICE_FIELDS[field]
    if value not in {choice.value for choice in allowed}:
        return f"Please select a valid {field.replace('_', ' ')}"
    return ""


def validate_field(field: str, value: str, current_year: Optional[int] = None) -> str:
    """Real time validation while typing, dropdowns aren't checked until next()"""
    if field == "boat_year":
        return validate_year(value, current_year)
    if field in FIELD_MIN_LENGTHS:
        if field in OPTIONAL_TEXT_FIELDS and not (value or "").strip():
            return ""
        return validate_text_input(
            value, FIELD_LABELS[field], FIELD_MIN_LENGTHS[field], FIELD_MAX_LENGTHS.get(field)
        )
    if field in FIELD_MAX_LENGTHS:
        # free text, only capped
        return validate_max_length(value, FIELD_LABELS[field], FIELD_MAX_LENGTHS[field])
    return ""


def validate_boat_details(form: FormState, current_year: Optional[int] = None) -> Dict[str, str]:
    """Full step 1 check, returns only the fields that failed"""
    errors = {
        "service_type": validate_required(form.service_type, FIELD_LABELS["service_type"]),
        "boat_type": validate_required(form.boat_type, FIELD_LABELS["boat_type"]),
        "boat_make": validate_text_input(form.boat_make, FIELD_LABELS["boat_make"], 2),
        "boat_model": validate_text_input(form.boat_model, FIELD_LABELS["boat_model"], 2),
        "boat_year": validate_year(form.boat_year, current_year),
        "problem_description": validate_text_input(
            form.problem_description,
            FIELD_LABELS["problem_description"],
            FIELD_MIN_LENGTHS["problem_description"],
            FIELD_MAX_LENGTHS["problem_description"],
        ),
    }

    for field in OPTIONAL_TEXT_FIELDS + ("customer_notes",):
        errors[field] = validate_field(field, getattr(form, field), current_year)

    for field in CHOICE_FIELDS:
        if not errors.get(field):
            errors[field] = validate_choice(getattr(form, field), field)

    return {field: message for field, message in errors.items() if message}
