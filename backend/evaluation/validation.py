"""Request validation against named rule sets.

`validate()` runs a raw mapping through one of the request schemas and
either returns the normalized model or raises a VALIDATION `AppError`
listing every violated constraint. `field_errors()` renders pydantic's
error dicts into the messages clients see; the HTTP layer uses it for
FastAPI's own `RequestValidationError` too, so both paths read the same.
"""

from typing import Iterable, List, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from . import schemas
from .errors import INVALID_ID, REQUIRED_FIELD, validation_error

RULE_SETS = {
    "subject.create": schemas.SubjectCreate,
    "subject.update": schemas.SubjectUpdate,
    "competency.create": schemas.CompetencyCreate,
    "competency.update": schemas.CompetencyUpdate,
    "id": schemas.IdParam,
}

_LABELS = {
    "subject": {"name": "Subject name", "description": "Description"},
    "competency": {"name": "Competency name", "marks": "Marks", "subjectId": "Subject ID"},
}

_REQUIRED_MESSAGES = {
    "subjectId": "Subject ID is required",
    "marks": "Marks are required",
}

_ID_FIELDS = {"id", "subjectId", "subject_id", "competency_id"}
_LOCATION_PREFIXES = {"body", "path", "query"}


def entity_of(rule_set: str) -> str:
    return rule_set.split(".", 1)[0]


def _field_name(loc: Iterable) -> Optional[str]:
    parts = [str(p) for p in loc if p not in _LOCATION_PREFIXES]
    return parts[0] if parts else None


def _bound(value) -> str:
    # float fields report their limits as 10.0; show them as written
    return f"{value:g}" if isinstance(value, (int, float)) else str(value)


def _render(err: dict, field: Optional[str], entity: str) -> str:
    kind = err.get("type", "")
    ctx = err.get("ctx") or {}
    label = _LABELS.get(entity, {}).get(field, field or "Value")
    if field in _ID_FIELDS and kind != "missing":
        return INVALID_ID
    if kind == "missing":
        if field is None:
            return "Request body is required"
        return _REQUIRED_MESSAGES.get(field, REQUIRED_FIELD)
    if kind == "string_too_short":
        raw = err.get("input")
        if isinstance(raw, str) and not raw.strip():
            return REQUIRED_FIELD
        return f"{label} must be at least {ctx.get('min_length')} characters"
    if kind == "string_too_long":
        return f"{label} cannot exceed {ctx.get('max_length')} characters"
    if kind == "string_type":
        return f"{label} must be a string"
    if kind in ("float_parsing", "float_type", "finite_number"):
        return f"{label} must be a number"
    if kind == "greater_than_equal":
        return f"{label} must be at least {_bound(ctx.get('ge'))}"
    if kind == "less_than_equal":
        return f"{label} cannot exceed {_bound(ctx.get('le'))}"
    if kind == "json_invalid":
        return "Request body is not valid JSON"
    if kind == "model_attributes_type" or kind == "dict_type":
        return "Request body must be a JSON object"
    if kind == "value_error" and "error" in ctx:
        return str(ctx["error"])
    return err.get("msg", "Invalid value")


def field_errors(raw_errors: Iterable[dict], entity: str) -> List[dict]:
    """Turn pydantic error dicts into `{field, message}` items, in order."""
    out = []
    for err in raw_errors:
        field = _field_name(err.get("loc", ()))
        out.append({"field": field, "message": _render(err, field, entity)})
    return out


def validate(rule_set: str, raw) -> BaseModel:
    """Validate `raw` against `rule_set` and return the normalized model.

    Raises a VALIDATION `AppError` carrying all field errors at once.
    """
    model = RULE_SETS[rule_set]
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        raise validation_error(field_errors(exc.errors(), entity_of(rule_set))) from None


def validate_id(value) -> int:
    return validate("id", {"id": value}).id
