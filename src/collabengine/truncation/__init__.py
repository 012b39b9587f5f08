"""Content-aware truncation for prompts and model output."""
from .engine import ContentType, truncate
from .generic import truncate_generic, truncation_marker
from .limits import (
    MAX_ANSWER_LENGTH,
    MAX_RATIONALE_LENGTH,
    fit_prompt,
    response_limit,
    truncate_collection,
    truncate_model_response,
)
from .structured import truncate_code, truncate_draft, truncate_qa, truncate_vote
