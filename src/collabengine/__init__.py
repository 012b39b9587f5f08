"""
collabengine -- multi-agent LLM collaboration engine.

Several models answer one prompt together (round table, sequential critique
chain or small team) under hard wall-clock and dollar budgets.

    from collabengine import CollaborationOrchestrator, Session
    from collabengine.llm import create_model_client

    orchestrator = CollaborationOrchestrator(create_model_client())
    result = await orchestrator.run(Session(prompt="...", agents=["claude", "gemini", "chatgpt"]))
"""

from .config import EngineConfig
from .errors import (
    AgentFailureError,
    AllAgentsFailedError,
    CollaborationError,
    CostLimitExceededError,
    GlobalDeadlineError,
)
from .models import CollaborationMode, CollaborationResult, Session
from .orchestration import CollaborationOrchestrator
from .service import CollaborationService

__version__ = "0.1.0"
