"""
Engine Settings

Read once from the environment at startup; everything else receives an
EngineSettings instance explicitly.
"""

import os
from dataclasses import dataclass

from .errors import ValidationError

LAST_WINS = "last_wins"
REJECT_OVERLAPS = "reject"
OVERLAP_POLICIES = (LAST_WINS, REJECT_OVERLAPS)


@dataclass(frozen=True)
class EngineSettings:
    """Runtime configuration for the commission engine."""

    database_url: str = "sqlite:///commissions.db"
    cutoff_day: int = 5
    overlap_policy: str = LAST_WINS
    environment: str = "dev"

    def __post_init__(self):
        if not (1 <= self.cutoff_day <= 31):
            raise ValidationError(f"cutoff_day must be between 1 and 31, got: {self.cutoff_day}", field="cutoff_day")
        if self.overlap_policy not in OVERLAP_POLICIES:
            raise ValidationError(
                f"Invalid overlap_policy: {self.overlap_policy}. Must be one of {', '.join(OVERLAP_POLICIES)}",
                field="overlap_policy",
            )

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            database_url=os.environ.get("DATABASE_URL", "sqlite:///commissions.db"),
            cutoff_day=int(os.environ.get("COMMISSION_CUTOFF_DAY", 5)),
            overlap_policy=os.environ.get("COMMISSION_RULE_OVERLAP_POLICY", LAST_WINS),
            environment=os.environ.get("ENVIRONMENT", "dev"),
        )
