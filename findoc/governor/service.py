"""Cost-governed admission control shared by every AI-calling stage.

A single in-memory ledger tracks the USD spent today (UTC calendar day).
Before a stage calls a model it asks for admission; after the call it
records the tokens it was billed for.

Soft cap: admission check and usage recording are two separate operations.
Each one is atomic, but concurrent runs may all pass the check before any of
them records, so realized daily spend can exceed the limit by the cost of the
requests in flight at that moment. No lock is held across an upstream call.

The ledger lives in process memory only. A restart resets today's spend to
zero; durable budget storage is out of scope.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime

from prometheus_client import Counter, Gauge
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from findoc.shared.config import Settings, get_settings
from findoc.shared.errors import AdmissionDenied

logger = logging.getLogger(__name__)


# Prometheus metrics for cost governance
daily_spend_gauge = Gauge(
    "ai_daily_spend_usd",
    "USD spent on model calls during the current UTC day",
)

daily_limit_gauge = Gauge(
    "ai_daily_limit_usd",
    "Configured daily spend limit in USD",
)

admission_decisions_total = Counter(
    "ai_admission_decisions_total",
    "Admission decisions taken by the cost governor",
    ["decision"],  # allowed, denied
)

cost_recorded_usd_total = Counter(
    "ai_cost_recorded_usd_total",
    "USD recorded against the daily budget",
    ["pricing"],  # extraction, scoring
)


class PricingTable(BaseModel):
    """Per-million-token prices for one model."""

    model_config = ConfigDict(frozen=True)

    name: str
    input_per_million: float = Field(ge=0)
    output_per_million: float = Field(ge=0)

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        """Compute the USD cost of a call."""
        return (
            input_tokens / 1_000_000 * self.input_per_million
            + output_tokens / 1_000_000 * self.output_per_million
        )


def extraction_pricing(settings: Settings) -> PricingTable:
    """Pricing for the extraction (vision) model."""
    return PricingTable(
        name="extraction",
        input_per_million=settings.extraction_input_per_million,
        output_per_million=settings.extraction_output_per_million,
    )


def scoring_pricing(settings: Settings) -> PricingTable:
    """Pricing for the scoring model."""
    return PricingTable(
        name="scoring",
        input_per_million=settings.scoring_input_per_million,
        output_per_million=settings.scoring_output_per_million,
    )


class UsageRecord(BaseModel):
    """Cost accounting for one AI-calling stage, serialized in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    input_tokens: int
    output_tokens: int
    cost: float
    daily_total: float
    daily_limit: float
    remaining_budget: float


class LedgerSnapshot(BaseModel):
    """Point-in-time view of the ledger."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    date: date
    daily_total: float
    daily_limit: float
    remaining_budget: float


@dataclass
class CostLedger:
    """Spend for one UTC calendar day."""

    date: date
    total_cost_usd: float = 0.0


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of an admission check."""

    allowed: bool
    current_usage: float
    limit: float


class CostGovernor:
    """Process-wide daily budget gate.

    Attributes:
        daily_limit: Spend limit in USD; admission is denied once the
            ledger total reaches it
        ledger: Current day's ledger
    """

    def __init__(
        self,
        daily_limit: float,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize governor.

        Args:
            daily_limit: Daily spend limit in USD
            clock: Returns "now"; defaults to the current UTC time
        """
        self.daily_limit = daily_limit
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self.ledger = CostLedger(date=self._today())
        daily_limit_gauge.set(daily_limit)
        daily_spend_gauge.set(0.0)

    def check_admission(self) -> AdmissionDecision:
        """Decide whether a new model call may start.

        Resets the ledger first if the stored day is not today. Denied when the
        total has reached the limit (denial starts exactly at the limit).

        Returns:
            AdmissionDecision with current usage and limit
        """
        with self._lock:
            self._reset_if_new_day()
            current = self.ledger.total_cost_usd
            allowed = current < self.daily_limit

        admission_decisions_total.labels(decision="allowed" if allowed else "denied").inc()
        if not allowed:
            logger.warning(
                f"Admission denied: daily spend ${current:.4f} reached limit "
                f"${self.daily_limit:.2f}"
            )
        return AdmissionDecision(allowed=allowed, current_usage=current, limit=self.daily_limit)

    def require_admission(self, stage: str) -> None:
        """Check admission and raise if denied.

        Args:
            stage: Pipeline stage asking for admission

        Raises:
            AdmissionDenied: If the daily budget is exhausted
        """
        decision = self.check_admission()
        if not decision.allowed:
            raise AdmissionDenied(stage, decision.current_usage, decision.limit)

    def record_usage(
        self, input_tokens: int, output_tokens: int, pricing: PricingTable
    ) -> UsageRecord:
        """Charge a completed model call against today's budget.

        Args:
            input_tokens: Prompt tokens billed
            output_tokens: Completion tokens billed
            pricing: Price table of the model that served the call

        Returns:
            UsageRecord reflecting the ledger right after this call
        """
        cost = pricing.cost(input_tokens, output_tokens)
        with self._lock:
            self._reset_if_new_day()
            self.ledger.total_cost_usd += cost
            total = self.ledger.total_cost_usd

        cost_recorded_usd_total.labels(pricing=pricing.name).inc(cost)
        daily_spend_gauge.set(total)
        logger.info(
            f"Recorded {pricing.name} usage: {input_tokens} in / {output_tokens} out tokens, "
            f"${cost:.6f} (daily total ${total:.4f} of ${self.daily_limit:.2f})"
        )

        return UsageRecord(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
            daily_total=total,
            daily_limit=self.daily_limit,
            remaining_budget=max(0.0, self.daily_limit - total),
        )

    def snapshot(self) -> LedgerSnapshot:
        """Get the current ledger state (after any pending day reset)."""
        with self._lock:
            self._reset_if_new_day()
            ledger_date = self.ledger.date
            total = self.ledger.total_cost_usd

        return LedgerSnapshot(
            date=ledger_date,
            daily_total=total,
            daily_limit=self.daily_limit,
            remaining_budget=max(0.0, self.daily_limit - total),
        )

    def _today(self) -> date:
        return self._clock().astimezone(UTC).date()

    def _reset_if_new_day(self) -> None:
        # Caller holds self._lock
        today = self._today()
        if self.ledger.date != today:
            logger.info(
                f"New budget day {today.isoformat()}; resetting ledger "
                f"(previous day spent ${self.ledger.total_cost_usd:.4f})"
            )
            self.ledger = CostLedger(date=today)
            daily_spend_gauge.set(0.0)


_governor: CostGovernor | None = None
_governor_lock = threading.Lock()


def get_cost_governor(settings: Settings | None = None) -> CostGovernor:
    """Get the process-wide CostGovernor, creating it on first use.

    Args:
        settings: Settings used only when the governor is first created

    Returns:
        Shared CostGovernor instance
    """
    global _governor
    with _governor_lock:
        if _governor is None:
            settings = settings or get_settings()
            _governor = CostGovernor(daily_limit=settings.daily_cost_limit_usd)
            logger.info(f"Cost governor created with daily limit ${settings.daily_cost_limit_usd}")
        return _governor
