"""Cost ledger, price tables, and pre-call estimation."""
from .ledger import CostLedger, LedgerEntry, estimate_cost
from .pricing import MODE_TOKEN_MULTIPLIERS, ModelPrice, estimate_tokens, price_for
