from __future__ import annotations

from dataclasses import dataclass, field

OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_NOOP = "noop"


@dataclass(frozen=True)
class ItemFailure:
    variant_id: str
    product_title: str
    variant_title: str
    error: str


@dataclass(frozen=True)
class PriceChange:
    variant_id: str
    product_title: str
    variant_title: str
    old_price: float
    new_price: float


@dataclass
class ExecutionResult:
    """Summary of one campaign run.

    ``completed`` with a non-zero ``failure_count`` is a partial success;
    ``failed`` means the run itself could not finish and ``failure_reason``
    says why.
    """

    campaign_id: str
    outcome: str
    total: int = 0
    updates: list[PriceChange] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    failure_reason: str | None = None

    @property
    def success_count(self) -> int:
        return len(self.updates)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return self.outcome != OUTCOME_FAILED

    @classmethod
    def noop(cls, campaign_id: str, reason: str | None = None) -> "ExecutionResult":
        return cls(campaign_id=campaign_id, outcome=OUTCOME_NOOP, failure_reason=reason)

    @classmethod
    def failed(cls, campaign_id: str, reason: str) -> "ExecutionResult":
        return cls(campaign_id=campaign_id, outcome=OUTCOME_FAILED, failure_reason=reason)

    def to_payload(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "outcome": self.outcome,
            "total": self.total,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "failures": [
                {
                    "variant_id": f.variant_id,
                    "product_title": f.product_title,
                    "variant_title": f.variant_title,
                    "error": f.error,
                }
                for f in self.failures
            ],
            "updates": [
                {
                    "product_title": u.product_title,
                    "variant_title": u.variant_title,
                    "old_price": u.old_price,
                    "new_price": u.new_price,
                }
                for u in self.updates
            ],
            "failure_reason": self.failure_reason,
        }
