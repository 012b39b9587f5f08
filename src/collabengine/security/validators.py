"""
Input Validators - checks applied to session requests at the boundary.

Parse at the boundary: the API and the CLI validate a request before a
Session is built, so the orchestrator can trust agent ids, budgets and
the mode it receives.
"""

import logging
import re

logger = logging.getLogger(__name__)

AGENT_ID_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_.-]*$")
MAX_AGENTS = 12
MAX_AGENT_ID_LENGTH = 64


class ValidationError(ValueError):
    """Raised when input validation fails. Contains a user-friendly message."""

    pass


def validate_identifier(value: str, field_name: str = "identifier") -> str:
    """Agent ids: a letter, then letters, digits, '_', '-' or '.'."""
    if len(value) > MAX_AGENT_ID_LENGTH or not AGENT_ID_PATTERN.match(value):
        raise ValidationError(
            f"{field_name} must start with a letter and contain only letters, "
            f"numbers, underscores, hyphens and dots (max {MAX_AGENT_ID_LENGTH})"
        )
    return value


def validate_list_size(
    items: list,
    field_name: str = "list",
    max_items: int = 100,
    min_items: int = 0,
) -> list:
    """Validate that a list has between min_items and max_items entries."""
    if len(items) < min_items:
        raise ValidationError(f"{field_name} must have at least {min_items} item(s)")
    if len(items) > max_items:
        raise ValidationError(
            f"{field_name} cannot have more than {max_items} items (got {len(items)})"
        )
    return items


def validate_agents(agents: list[str], field_name: str = "agents") -> list[str]:
    """Non-empty, bounded list of safe agent ids, de-duplicated in order."""
    validate_list_size(agents, field_name, max_items=MAX_AGENTS, min_items=1)
    unique: list[str] = []
    for agent in agents:
        validate_identifier(agent, f"{field_name} entry")
        if agent not in unique:
            unique.append(agent)
    return unique
