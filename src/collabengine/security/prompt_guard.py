"""
Prompt Guard - screen the user's prompt before it is fanned out to agents.

The same prompt goes to every agent in every phase, so it is cleaned once,
at the orchestrator boundary:

  detect_injection_attempt() -- scans for known injection patterns (logs, doesn't block)
  redact_secrets()           -- replaces credential-looking assignments with [REDACTED]
  sanitize_for_prompt()      -- control characters, secrets, length enforcement

Whitespace and layout are preserved: prompts often carry code blocks that
must reach the models intact.
"""

import logging
import re

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 100_000
TRUNCATED_MARKER = "\n[TRUNCATED]"
REDACTED = "[REDACTED]"

# Known prompt injection patterns
INJECTION_PATTERNS = [
    r"ignore\s+(all\s+)?(previous|prior)\s+instructions",
    r"disregard\s+(all\s+)?(previous|prior|your)\s+instructions",
    r"forget\s+(all\s+)?(your|previous|prior)\s+instructions",
    r"you\s+are\s+now\s+a",
    r"from\s+now\s+on\s+you",
    r"system\s+prompt",
    r"<\|im_start\|>",
    r"<\|im_end\|>",
    r"\[INST\]",
    r"\[/INST\]",
    r"<\|system\|>",
    r"bypass\s+\w+\s+protection",
    r"override\s+safety",
    r"jailbreak",
    r"DAN\s+mode",
]

# "api_key = sk-...", "password: hunter2", "Authorization: Bearer abc"
SECRET_ASSIGNMENT = re.compile(
    r"(?P<name>\b(?:api[_\s-]?key|password|passwd|secret|access[_\s-]?token|"
    r"auth[_\s-]?token|authorization)\b)(?P<sep>\s*[=:]\s*)"
    r"(?P<value>(?:bearer\s+)?[^\s'\"`,;]{4,})",
    re.IGNORECASE,
)

# Everything below 0x20 except tab, newline and carriage return
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def detect_injection_attempt(text: str) -> list[str]:
    """
    Detect potential prompt injection patterns in user content.

    Returns list of detected patterns (empty = clean).
    Does NOT block -- logs findings and returns them for the caller to decide.
    """
    if not text:
        return []

    findings = []
    text_lower = text.lower()

    for pattern in INJECTION_PATTERNS:
        if re.search(pattern, text_lower, re.IGNORECASE):
            findings.append(pattern)

    if findings:
        logger.warning(
            f"[PromptGuard] Detected {len(findings)} potential injection pattern(s) "
            f"in input ({len(text)} chars)"
        )

    return findings


def redact_secrets(text: str) -> str:
    """Keep the name of a credential assignment, replace its value."""
    redacted, count = SECRET_ASSIGNMENT.subn(
        lambda m: f"{m.group('name')}{m.group('sep')}{REDACTED}", text
    )
    if count:
        logger.info(f"[PromptGuard] Redacted {count} credential value(s)")
    return redacted


def sanitize_for_prompt(
    content: str,
    max_length: int = MAX_PROMPT_LENGTH,
    strip_control: bool = True,
    redact: bool = True,
) -> str:
    """
    Sanitize user content for safe inclusion in LLM prompts.

    - Strips null bytes and other control characters (tabs/newlines kept)
    - Redacts credential values (api_key=..., password: ...)
    - Truncates to max_length (prevents token budget blowout)
    - Does NOT remove injection patterns (that would alter user content)
    """
    if not content:
        return ""

    if strip_control:
        content = CONTROL_CHARS.sub("", content)

    if redact:
        content = redact_secrets(content)

    if len(content) > max_length:
        content = content[: max(max_length - len(TRUNCATED_MARKER), 0)] + TRUNCATED_MARKER
        logger.info(f"[PromptGuard] Content truncated to {max_length} chars")

    return content
