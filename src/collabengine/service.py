"""
Per-process collaboration service.

One CollaborationService is created per process (the API creates it in
create_app, the CLI per command) and injected into every orchestrator. It
owns the state that must outlive a single session:

  - the ProviderLimiter, so concurrency limits are provider-scoped
  - the registry of running sessions, so a session can be cancelled by id
  - running totals for /metrics
"""

import logging
from dataclasses import asdict, dataclass

from .cancellation import CancellationToken
from .concurrency.limiter import ProviderLimiter
from .config import EngineConfig
from .models import CollaborationResult

logger = logging.getLogger(__name__)


@dataclass
class ServiceStats:
    sessions_started: int = 0
    sessions_completed: int = 0
    sessions_failed: int = 0
    sessions_refused: int = 0
    sessions_aborted: int = 0
    total_spent_usd: float = 0.0
    total_duration: float = 0.0
    total_agent_calls: int = 0

    @property
    def average_duration_seconds(self) -> float:
        if self.sessions_completed == 0:
            return 0.0
        return round(self.total_duration / self.sessions_completed, 2)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total_spent_usd"] = round(self.total_spent_usd, 6)
        data["average_duration_seconds"] = self.average_duration_seconds
        return data


class CollaborationService:
    """
    Shared limiter + session registry.

    Usage:
        service = CollaborationService(EngineConfig.from_env())
        orchestrator = CollaborationOrchestrator(client, service=service)
        ...
        service.cancel(session_id, "user requested")
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        limiter: ProviderLimiter | None = None,
    ):
        self.config = config or EngineConfig()
        self.limiter = limiter or ProviderLimiter(
            default_limit=self.config.default_concurrency
        )
        self.stats = ServiceStats()
        self._sessions: dict[str, CancellationToken] = {}

    # -- registry ------------------------------------------------------------

    def register(self, session_id: str, token: CancellationToken) -> None:
        if session_id in self._sessions:
            logger.warning(f"[Service] Session {session_id} registered twice")
        self._sessions[session_id] = token
        self.stats.sessions_started += 1

    def unregister(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def is_running(self, session_id: str) -> bool:
        return session_id in self._sessions

    @property
    def active_sessions(self) -> list[str]:
        return list(self._sessions)

    def cancel(self, session_id: str, reason: str = "cancelled") -> bool:
        """Cancel a running session. Returns False when it is not running."""
        token = self._sessions.get(session_id)
        if token is None:
            return False
        logger.info(f"[Service] Cancelling session {session_id} ({reason})")
        token.cancel(reason)
        return True

    # -- accounting ----------------------------------------------------------

    def record_result(self, result: CollaborationResult, calls: int = 0) -> None:
        self.stats.total_spent_usd += result.spent_usd
        self.stats.total_agent_calls += calls
        if result.refused:
            self.stats.sessions_refused += 1
            return
        if result.aborted:
            self.stats.sessions_aborted += 1
        self.stats.sessions_completed += 1
        self.stats.total_duration += result.duration_seconds

    def record_failure(self, spent_usd: float = 0.0, calls: int = 0) -> None:
        self.stats.sessions_failed += 1
        self.stats.total_spent_usd += spent_usd
        self.stats.total_agent_calls += calls

    def snapshot(self) -> dict:
        return {
            "active_sessions": len(self._sessions),
            "stats": self.stats.to_dict(),
            "limiter": self.limiter.snapshot(),
        }
