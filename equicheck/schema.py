"""Output schema the model must follow.

The schema is plain data: a mapping of field name to a descriptor with
``type``, ``required``, ``description`` and, for arrays and objects, ``items``
or ``properties``. ``to_json_schema`` turns it into the JSON Schema object the
chat completions ``response_format`` expects.
"""

from typing import Any

from equicheck.models import CATEGORIES

DISCREPANCY_FIELDS: dict[str, dict[str, Any]] = {
    "category": {
        "type": "string",
        "required": True,
        "description": "Must be one of: " + ", ".join(f"'{c}'" for c in CATEGORIES) + ".",
    },
    "topic": {
        "type": "string",
        "required": True,
        "description": "The specific topic (e.g., 'EBITDA FY25', 'China Supply Chain').",
    },
    "buySideClaim": {
        "type": "string",
        "required": True,
        "description": "Exact extraction of the finding from the Buy Side Report.",
    },
    "sellSideClaim": {
        "type": "string",
        "required": True,
        "description": "Exact extraction of the claim from the Sell Side Memo.",
    },
    "severity": {
        "type": "string",
        "required": True,
        "description": "Low, Medium, High, or Critical",
    },
    "reasoning": {
        "type": "string",
        "required": True,
        "description": "Brief explanation of why this is a discrepancy and its impact on valuation.",
    },
}

ANALYSIS_SCHEMA: dict[str, dict[str, Any]] = {
    "executiveSummary": {
        "type": "string",
        "required": True,
        "description": "A high-level summary of the comparison, specifically mentioning the verdict (Pass/Kill).",
    },
    "riskScore": {
        "type": "number",
        "required": True,
        "description": "A calculated risk score from 0 to 100. 100 means extreme risk/deal breaker.",
    },
    "agreementScore": {
        "type": "number",
        "required": True,
        "description": "A calculated score from 0 to 100 indicating how much the documents agree.",
    },
    "strategicAlignment": {
        "type": "string",
        "required": True,
        "description": "Analysis of whether the strategic visions in both documents align.",
    },
    "keyRisks": {
        "type": "array",
        "required": True,
        "items": {"type": "string"},
        "description": (
            "List of top 3-5 key risks identified "
            "(e.g., 'Artificial EBITDA inflation', 'Undisclosed Legal Action')."
        ),
    },
    "discrepancies": {
        "type": "array",
        "required": True,
        "items": {"type": "object", "properties": DISCREPANCY_FIELDS},
        "description": "Every material discrepancy between the two documents.",
    },
}

SCHEMA_NAME = "analysis_result"


def _convert(descriptor: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {"type": descriptor["type"]}
    if "description" in descriptor:
        out["description"] = descriptor["description"]
    if descriptor["type"] == "array":
        out["items"] = _convert(descriptor["items"])
    elif descriptor["type"] == "object":
        out.update(_object_schema(descriptor["properties"]))
    return out


def _object_schema(fields: dict[str, dict[str, Any]]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: _convert(d) for name, d in fields.items()},
        "required": [name for name, d in fields.items() if d.get("required")],
        "additionalProperties": False,
    }


def to_json_schema(fields: dict[str, dict[str, Any]] = ANALYSIS_SCHEMA) -> dict[str, Any]:
    """Render a field descriptor mapping as a JSON Schema object."""
    return _object_schema(fields)


def response_format() -> dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": SCHEMA_NAME,
            "schema": to_json_schema(),
            "strict": True,
        },
    }
