"""
Test doubles for the model client, event publisher and status callback.

ScriptedClient answers by (agent, phase), where the phase is read off the
prompt text, so protocol evals can fail exactly one agent in exactly one
phase without touching the engine.
"""

import asyncio

from collabengine.llm.client import AgentPrompt

# Markers that identify which phase a prompt belongs to (checked in order).
PHASE_MARKERS = (
    ("critique_vote", "OTHER DRAFTS:"),
    ("synthesis", "WINNING DRAFT:"),
    ("synthesis", "As the summarizer"),
    ("vote", "vote for the draft"),
    ("critique", "Critique these drafts"),
    ("refine", "PREVIOUS RESPONSE:"),
)


def phase_of(prompt: AgentPrompt) -> str:
    for phase, marker in PHASE_MARKERS:
        if marker in prompt.user_prompt:
            return phase
    return "draft"


def default_reply(agent_id: str, phase: str, prompt: AgentPrompt) -> str:
    if phase == "draft":
        return f"Draft from {agent_id}: the answer is 42."
    if phase == "critique":
        return f"{agent_id} thinks the other drafts are clear but brief."
    if phase == "vote":
        return f"{agent_id}\n- clearest starting point"
    if phase == "critique_vote":
        return f"CRITIQUES:\nSolid drafts.\n\nVOTE: {agent_id}\nREASON: Most complete."
    if phase == "synthesis":
        return "FINAL ANSWER: The answer is 42.\n\nRATIONALE: Merged the strongest drafts."
    return f"Refined by {agent_id}."


class ScriptedClient:
    """
    ModelClient whose replies are scripted per (agent, phase).

    A script value may be a string, a ModelReply, an exception instance
    (raised), a callable(agent_id, prompt) returning one of those, or a
    list consumed one entry per call (for retries). delays overrides the
    reply delay per agent.
    """

    def __init__(
        self,
        script: dict | None = None,
        delay: float = 0.0,
        delays: dict[str, float] | None = None,
    ):
        self.script = dict(script or {})
        self.delay = delay
        self.delays = dict(delays or {})
        self.calls: list[tuple[str, str, AgentPrompt]] = []

    async def invoke(self, agent_id, model_id, prompt, token):
        phase = phase_of(prompt)
        self.calls.append((agent_id, phase, prompt))
        delay = self.delays.get(agent_id, self.delay)
        if delay:
            await asyncio.sleep(delay)

        reply = self.script.get((agent_id, phase), self.script.get(agent_id))
        if isinstance(reply, list):
            reply = reply.pop(0) if reply else None
        if callable(reply) and not isinstance(reply, BaseException):
            reply = reply(agent_id, prompt)
        if isinstance(reply, BaseException):
            raise reply
        if reply is None:
            reply = default_reply(agent_id, phase, prompt)
        return reply

    def agents_called(self, phase: str) -> list[str]:
        return [agent for agent, p, _ in self.calls if p == phase]

    def prompts_for(self, agent_id: str, phase: str) -> list[AgentPrompt]:
        return [prompt for agent, p, prompt in self.calls if agent == agent_id and p == phase]


class StreamingScriptedClient(ScriptedClient):
    """Adds the chunked stream() variant."""

    def __init__(self, chunks: list[str], **kwargs):
        super().__init__(**kwargs)
        self.chunks = chunks

    async def stream(self, agent_id, model_id, prompt, token):
        self.calls.append((agent_id, phase_of(prompt), prompt))
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk


class RecordingPublisher:
    """EventPublisher that keeps every event."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def publish(self, channel_id: str, event: dict) -> None:
        self.events.append((channel_id, event))

    def types(self) -> list[str]:
        return [event["type"] for _, event in self.events]

    def of_type(self, event_type: str) -> list[dict]:
        return [event for _, event in self.events if event["type"] == event_type]


class StatusLog:
    """on_status callback that records (agent, state, message)."""

    def __init__(self):
        self.updates: list[tuple[str, str, str]] = []

    def __call__(self, agent: str, state: str, message: str) -> None:
        self.updates.append((agent, state, message))

    def last_state(self, agent: str) -> str | None:
        states = [s for a, s, _ in self.updates if a == agent and s != "phase_change"]
        return states[-1] if states else None
