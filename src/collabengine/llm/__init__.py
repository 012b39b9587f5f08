"""
Model access -- the ModelClient contract, the SDK-backed client, and the
AgentInvoker that wraps every call with limits, timeouts and retries.

Usage:
    from .llm import AgentInvoker, AgentPrompt, create_model_client

    client = create_model_client()  # keys from env
    invoker = AgentInvoker(client, limiter, ledger)
    result = await invoker.invoke(agent, AgentPrompt(user_prompt="..."), "draft", token)
"""

from .client import (
    AgentPrompt,
    ModelClient,
    ModelReply,
    SDKModelClient,
    StreamingModelClient,
    create_model_client,
)
from .invoker import AgentInvoker, EmptyResponseError
from .timeouts import MODEL_TIMEOUTS, SMALL_TEAM_TIMEOUTS, timeout_for_model
