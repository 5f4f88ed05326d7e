from __future__ import annotations

from typing import Any, Iterable

_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}

# Submitted values are never echoed back; payment payloads may carry card or customer data.
_ECHOED_ERROR_KEYS = ("type", "loc", "msg")


def _location_and_path(raw_loc: Any) -> tuple[str, str]:
    if raw_loc is None:
        return "body", "(root)"
    parts = [str(part) for part in raw_loc] if isinstance(raw_loc, (list, tuple)) else [str(raw_loc)]
    if not parts:
        return "body", "(root)"

    location = parts[0] if parts[0] in _REQUEST_LOCATIONS else "body"
    path_parts = parts[1:] if parts[0] in _REQUEST_LOCATIONS else parts
    return location, ".".join(path_parts) or "(root)"


def _summary(missing_fields: Iterable[str], error_count: int) -> str:
    missing = list(missing_fields)
    if missing:
        noun = "field" if len(missing) == 1 else "fields"
        return f"Validation failed: missing required {noun}: {', '.join(missing)}."
    noun = "field" if error_count == 1 else "fields"
    return f"Validation failed for {error_count} {noun}."


def format_validation_error_details(errors: list[dict[str, Any]]) -> dict[str, Any]:
    field_errors: list[dict[str, str]] = []
    missing_fields: list[str] = []

    for error in errors:
        location, path = _location_and_path(error.get("loc"))
        error_type = str(error.get("type", "validation_error"))
        field_errors.append(
            {
                "path": path,
                "location": location,
                "message": str(error.get("msg", "Invalid value")),
                "errorType": error_type,
            }
        )
        if error_type == "missing" and path not in missing_fields:
            missing_fields.append(path)

    return {
        "summary": _summary(missing_fields, len(field_errors)),
        "missingFields": missing_fields,
        "fieldErrors": field_errors,
        "errors": [{key: error[key] for key in _ECHOED_ERROR_KEYS if key in error} for error in errors],
    }
