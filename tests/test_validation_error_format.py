from core.validation_errors import format_validation_error_details


def test_missing_required_field_summary_is_readable():
    errors = [
        {
            "type": "missing",
            "loc": ("body", "external_intent_id"),
            "msg": "Field required",
            "input": {"payment_method_id": "pm_card_visa"},
        }
    ]

    details = format_validation_error_details(errors)

    assert details["summary"] == "Validation failed: missing required field: external_intent_id."
    assert details["missingFields"] == ["external_intent_id"]
    assert details["fieldErrors"] == [
        {
            "path": "external_intent_id",
            "location": "body",
            "message": "Field required",
            "errorType": "missing",
        }
    ]


def test_submitted_values_are_not_echoed():
    errors = [
        {
            "type": "greater_than",
            "loc": ("body", "amount"),
            "msg": "Input should be greater than 0",
            "input": "-5",
            "ctx": {"gt": 0},
        }
    ]

    details = format_validation_error_details(errors)

    assert details["summary"] == "Validation failed for 1 field."
    assert details["missingFields"] == []
    assert details["errors"] == [
        {"type": "greater_than", "loc": ("body", "amount"), "msg": "Input should be greater than 0"}
    ]


def test_nested_paths_and_other_locations():
    errors = [
        {"type": "string_type", "loc": ("body", "metadata", "order"), "msg": "Input should be a valid string"},
        {"type": "missing", "loc": ("header", "stripe-signature"), "msg": "Field required"},
        {"type": "value_error", "loc": None, "msg": "Invalid body"},
    ]

    details = format_validation_error_details(errors)

    assert [(item["location"], item["path"]) for item in details["fieldErrors"]] == [
        ("body", "metadata.order"),
        ("header", "stripe-signature"),
        ("body", "(root)"),
    ]


def test_multiple_missing_fields_are_deduplicated_and_listed():
    errors = [
        {"type": "missing", "loc": ("body", "user_id"), "msg": "Field required", "input": {}},
        {"type": "missing", "loc": ("body", "amount"), "msg": "Field required", "input": {}},
        {"type": "missing", "loc": ("body", "user_id"), "msg": "Field required", "input": {}},
    ]

    details = format_validation_error_details(errors)

    assert details["summary"] == "Validation failed: missing required fields: user_id, amount."
    assert details["missingFields"] == ["user_id", "amount"]
