from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Tuple

@dataclass(frozen=True)
class RoleSpec:
    name: str
    candidates: List[str]
    label: str
    quantile: bool = True

# Helper to keep candidate lists ordered and free of blanks/duplicates
def _kw(*items):
    return list(dict.fromkeys([s.strip() for s in items if s]))

# Evaluation order matters only for display; within a role the candidate order is precedence.
ROLES: Tuple[RoleSpec, ...] = (
    RoleSpec("date", _kw("date", "ds", "timestamp", "time"), "Date", quantile=False),
    RoleSpec("p10", _kw("p10", "q10", "10"), "P10"),
    RoleSpec("p50", _kw("p50", "q50", "50", "median"), "P50"),
    RoleSpec("p90", _kw("p90", "q90", "90"), "P90"),
)

ROLES_BY_NAME: Dict[str, RoleSpec] = {r.name: r for r in ROLES}

DATE_ROLE = "date"
QUANTILE_ROLES: Tuple[str, ...] = tuple(r.name for r in ROLES if r.quantile)

# Need at least this many quantile roles resolved before a series is built
MIN_QUANTILES = 2

# Plot colours per quantile role (also used by the matplotlib exports)
ROLE_COLORS: Dict[str, str] = {
    "p10": "#2563eb",
    "p50": "#16a34a",
    "p90": "#dc2626",
}
