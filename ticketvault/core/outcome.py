"""
Per-token outcomes.

Every candidate token produces exactly one TokenOutcome: either a
resolved TicketRecord or the reason it was skipped. A pass reduces its
outcomes into the final set, so the skip policy is data rather than
control flow.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from ..schemas import TicketRecord
from .errors import SkipReason, TokenSkipped


@dataclass(frozen=True)
class TokenOutcome:
    """Result of one token's pipeline."""
    token_id: int
    record: Optional[TicketRecord] = None
    reason: Optional[SkipReason] = None
    detail: str = ""

    @classmethod
    def resolved(cls, record: TicketRecord) -> "TokenOutcome":
        return cls(token_id=record.token_id, record=record)

    @classmethod
    def skipped(cls, skip: TokenSkipped) -> "TokenOutcome":
        return cls(token_id=skip.token_id, reason=skip.reason, detail=skip.detail)

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass(frozen=True)
class PassResult:
    """Outcomes of one resolution pass, reduced."""
    address: str
    records: tuple[TicketRecord, ...]
    skipped: tuple[TokenOutcome, ...]

    @property
    def candidate_count(self) -> int:
        return len(self.records) + len(self.skipped)

    @property
    def token_ids(self) -> set[int]:
        return {r.token_id for r in self.records}

    def skipped_because(self, reason: SkipReason) -> list[int]:
        return [o.token_id for o in self.skipped if o.reason == reason]


def reduce_outcomes(address: str, outcomes: Iterable[TokenOutcome]) -> PassResult:
    """
    Split outcomes into records and skips.

    Outcomes are ordered by token id so the result never depends on
    which token's pipeline finished first.
    """
    ordered = sorted(outcomes, key=lambda o: o.token_id)
    return PassResult(
        address=address,
        records=tuple(o.record for o in ordered if o.record is not None),
        skipped=tuple(o for o in ordered if not o.ok),
    )
