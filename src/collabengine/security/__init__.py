"""Security utilities -- prompt screening and input validation."""
from .prompt_guard import detect_injection_attempt, redact_secrets, sanitize_for_prompt
from .validators import ValidationError, validate_agents, validate_identifier, validate_list_size
