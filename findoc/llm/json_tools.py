"""JSON extraction from LLM responses.

Handles common LLM quirks like markdown code blocks and prose around the
JSON object.
"""

import json
import re
from typing import Any


def parse_json_object(response_text: str) -> dict[str, Any]:
    """Extract and parse a JSON object from LLM response text.

    Args:
        response_text: Raw LLM response

    Returns:
        Parsed JSON dict

    Raises:
        ValueError: If no JSON object can be parsed (json.JSONDecodeError is a subclass)
    """
    # Try to extract JSON from markdown code block
    json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response_text)
    if json_match:
        candidate = json_match.group(1).strip()
    else:
        # Try to find JSON object directly
        json_match = re.search(r"\{[\s\S]*\}", response_text)
        candidate = json_match.group(0) if json_match else response_text.strip()

    result = json.loads(candidate)
    if not isinstance(result, dict):
        raise ValueError(f"Expected a JSON object, got {type(result).__name__}")
    return result
