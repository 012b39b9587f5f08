"""
Multi-agent orchestration.

Four collaboration modes, all driven by CollaborationOrchestrator:
  - RoundTable: parallel drafts, critique, vote, synthesis
  - SequentialCritiqueChain: agents refine one running answer in turn
  - SmallTeam: round table tuned for 3-4 slow models (serial, combined critique+vote)
  - IndividualResponses: every agent answers alone, no critique or vote

Every protocol shares the same AgentInvoker, limiter, ledger and event stream.
"""
from .base import CollaborationProtocol, ProtocolContext, choose_summarizer, pick_winner
from .individual import IndividualResponses
from .orchestrator import PROTOCOLS, CollaborationOrchestrator
from .parsing import parse_critique_vote, parse_synthesis, parse_vote, resolve_vote, tally_votes
from .round_table import RoundTableProtocol
from .sequential_chain import SequentialCritiqueChain
from .small_team import SmallTeamProtocol
from .styles import SequentialStyle
