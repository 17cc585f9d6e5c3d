# =============================================================================
# AGENTFORGE - OUTPUT HANDLER
# =============================================================================
"""
Output Handler Module

This module turns raw LLM text into the structured data agents return.
All agents use it to:
1. Extract JSON from model output (plain or inside a markdown block)
2. Check the extracted value against the expected output shape
3. Format history and code files for prompt variables
4. Produce bounded summaries for step records

Shape checks are deliberately shallow: required keys and top-level
types only. Anything deeper is the agent's business.
"""

import json
import logging
import re
from typing import Dict, Any, List, Optional


logger = logging.getLogger(__name__)


class AgentError(Exception):
    """Base exception for agent errors."""
    pass


class AgentOutputError(AgentError):
    """LLM output could not be parsed or has the wrong shape."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text

    def __str__(self) -> str:
        base = super().__str__()
        if self.raw_text:
            return f"{base}. Raw response: {self.raw_text}"
        return base


# =============================================================================
# JSON EXTRACTION
# =============================================================================

def extract_json(text: str) -> Any:
    """
    Extract JSON from text, handling markdown code blocks.

    Args:
        text: Raw model output

    Returns:
        Parsed JSON value (object or array)

    Raises:
        AgentOutputError: If no JSON value can be recovered
    """
    if not text or not text.strip():
        raise AgentOutputError("Empty response from model", text or "")

    # Try to find JSON in code block
    match = re.search(r'```(?:json)?\s*\n(.*?)```', text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    # Try to parse entire text as JSON
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Try to find a JSON object or array in text
    for pattern in (r'\{.*\}', r'\[.*\]'):
        match = re.search(pattern, text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group(0))
            except json.JSONDecodeError:
                continue

    raise AgentOutputError("Failed to parse JSON response from model", text)


# =============================================================================
# OUTPUT SCHEMAS
# =============================================================================

# validate_output enforces "type", "required" and per-property "type"/"enum".

USER_STORIES_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["title", "role", "goal", "reason", "acceptance_criteria"],
    },
}

CODE_VALIDATION_SCHEMA = {
    "type": "object",
    "required": [],
}

CODER_RESPONSE_SCHEMA = {
    "type": "object",
    "required": ["response_type", "explanation"],
    "properties": {
        "response_type": {
            "type": "string",
            "enum": ["code_generated", "code_modified", "clarification", "error"],
        },
        "explanation": {"type": "string"},
        "output_data": {"type": "object"},
    },
}

TEST_RESPONSE_SCHEMA = {
    "type": "object",
    "required": ["response_type", "explanation", "output_data"],
    "properties": {
        "response_type": {
            "type": "string",
            "enum": ["test_plan", "test_cases", "analysis", "clarification", "error"],
        },
        "explanation": {"type": "string"},
    },
}

GENERATED_TESTS_SCHEMA = {
    "type": "object",
    "required": ["test_framework", "test_files"],
    "properties": {
        "test_framework": {"type": "string"},
        "test_files": {"type": "array"},
    },
}

TEST_EXECUTION_SCHEMA = {
    "type": "object",
    "required": ["success", "total", "passed", "failed", "failed_tests"],
    "properties": {
        "success": {"type": "boolean"},
        "total": {"type": "number"},
        "passed": {"type": "number"},
        "failed": {"type": "number"},
        "failed_tests": {"type": "array"},
    },
}

FIX_VALIDATION_SCHEMA = {
    "type": "object",
    "required": ["is_valid", "explanation"],
    "properties": {
        "is_valid": {"type": "boolean"},
    },
}

SECURITY_ANALYSIS_SCHEMA = {
    "type": "object",
    "required": ["potential_risks_identified"],
    "properties": {
        "summary": {"type": "string"},
        "potential_risks_identified": {"type": "array"},
    },
}

SECURITY_VERIFICATION_SCHEMA = {
    "type": "object",
    "required": ["all_original_issues_fixed"],
    "properties": {
        "all_original_issues_fixed": {"type": "boolean"},
        "verification_results": {"type": "array"},
        "new_issues_found": {"type": "array"},
    },
}

_JSON_TYPES = {
    "object": dict,
    "array": list,
    "string": str,
    "boolean": bool,
    "number": (int, float),
    "integer": int,
}


def validate_output(output: Any, schema: Dict[str, Any]) -> List[str]:
    """
    Check output against a schema.

    Args:
        output: Parsed model output
        schema: One of the *_SCHEMA dictionaries

    Returns:
        List of problems found (empty when the output is acceptable)
    """
    errors: List[str] = []

    expected = _JSON_TYPES.get(schema.get("type", "object"))
    if expected and not isinstance(output, expected):
        return [f"Expected {schema.get('type')}, got {type(output).__name__}"]

    if isinstance(output, dict):
        for key in schema.get("required", []):
            if key not in output:
                errors.append(f"Missing required property: {key}")

        for key, prop in schema.get("properties", {}).items():
            if key not in output or output[key] is None:
                continue
            prop_type = _JSON_TYPES.get(prop.get("type"))
            if prop_type and not isinstance(output[key], prop_type):
                errors.append(f"Property '{key}' should be {prop.get('type')}")
            elif "enum" in prop and output[key] not in prop["enum"]:
                errors.append(f"Property '{key}' has unexpected value '{output[key]}'")

    elif isinstance(output, list) and "items" in schema:
        for index, item in enumerate(output):
            for problem in validate_output(item, schema["items"]):
                errors.append(f"Item {index}: {problem}")

    return errors


def require_valid(output: Any, schema: Dict[str, Any], raw_text: str) -> None:
    """
    Raise AgentOutputError if output does not match schema.

    Raises:
        AgentOutputError: Listing the problems and carrying the raw text
    """
    errors = validate_output(output, schema)
    if errors:
        raise AgentOutputError("Invalid response structure: " + "; ".join(errors), raw_text)


# =============================================================================
# PROMPT FORMATTING
# =============================================================================

def format_history(history: List[Dict[str, Any]], limit: int = 10) -> str:
    """Render the last messages of a conversation for a prompt."""
    if not history:
        return "No previous conversation."

    lines = []
    for message in history[-limit:]:
        role = message.get("role", "user")
        if role == "assistant" and message.get("agent_type"):
            role = f"assistant ({message['agent_type']})"
        lines.append(f"{role}: {message.get('content', '')}")
    return "\n".join(lines)


def format_code_files(code_files: Dict[str, str]) -> str:
    """Render a path -> content mapping as fenced blocks."""
    if not code_files:
        return "No code provided."

    blocks = []
    for path, content in code_files.items():
        blocks.append(f"### {path}\n```\n{content}\n```")
    return "\n\n".join(blocks)


def to_json_text(value: Any) -> str:
    """Serialize a value for embedding in a prompt."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, default=str)


def code_files_from_output(generated_code: Any, default_language: str = "ts") -> Optional[Dict[str, str]]:
    """
    Normalize coder output into a path -> content mapping.

    Accepts either a {code, language} record or a mapping that already
    holds file contents. Returns None when no code can be found.
    """
    if not isinstance(generated_code, dict) or not generated_code:
        return None

    code = generated_code.get("code")
    if isinstance(code, str):
        language = generated_code.get("language") or default_language
        return {f"generated.{language}": code}

    if all(isinstance(value, str) for value in generated_code.values()):
        return dict(generated_code)

    return None


def summarize(value: Any, limit: int = 500) -> str:
    """Bounded JSON summary for step records and logs."""
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, default=str)
    if len(text) > limit:
        return text[:limit] + "..."
    return text
