"""
statement_engines.variance -- Period-over-period line variances.

Responsibility:
    Calculate the change of a statement line between the previous and the
    current period: absolute and percentage change, trend direction and a
    significance band.  Summarize variances across a statement.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``absolute = current - previous``.
    - ``percentage = absolute / |previous| * 100`` rounded to 2dp; when
      previous is zero the percentage is 0 and ``percentage_undefined`` is set.
    - Trend is STABLE when |absolute| < 0.01.
    - Identical inputs produce identical outputs.

Failure modes:
    - ValueError from ``SignificanceThresholds`` if the bands are not
      strictly increasing.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from statement_engines.tracer import traced_engine
from statement_kernel.domain.amounts import TOLERANCE, ZERO, percentage


class VarianceTrend(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    STABLE = "stable"


class VarianceSignificance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class SignificanceThresholds:
    """Lower bounds (in percent) of the medium, high and critical bands."""

    medium: Decimal = Decimal("10")
    high: Decimal = Decimal("25")
    critical: Decimal = Decimal("50")

    def __post_init__(self) -> None:
        if not (ZERO <= self.medium < self.high < self.critical):
            raise ValueError(
                "Significance thresholds must satisfy 0 <= medium < high < critical"
            )

    def classify(self, pct: Decimal) -> VarianceSignificance:
        magnitude = abs(pct)
        if magnitude >= self.critical:
            return VarianceSignificance.CRITICAL
        if magnitude >= self.high:
            return VarianceSignificance.HIGH
        if magnitude >= self.medium:
            return VarianceSignificance.MEDIUM
        return VarianceSignificance.LOW


@dataclass(frozen=True)
class LineVariance:
    """Change of one line between previous and current period."""

    absolute: Decimal
    percentage: Decimal
    trend: VarianceTrend
    significance: VarianceSignificance
    percentage_undefined: bool = False


@dataclass(frozen=True)
class VarianceSummary:
    total_lines: int
    increases: int
    decreases: int
    stable: int
    significant: int
    largest_increase: str | None = None
    largest_decrease: str | None = None


class LineVarianceCalculator:
    """
    Pure calculator for line variances.

    Contract:
        No I/O, fully deterministic.
    Guarantees:
        ``calculate`` never raises for finite inputs.
    """

    def __init__(self, thresholds: SignificanceThresholds | None = None):
        self._thresholds = thresholds or SignificanceThresholds()

    def calculate(self, current: Decimal, previous: Decimal) -> LineVariance:
        absolute = current - previous

        if abs(absolute) < TOLERANCE:
            trend = VarianceTrend.STABLE
        elif absolute > ZERO:
            trend = VarianceTrend.INCREASE
        else:
            trend = VarianceTrend.DECREASE

        if previous == ZERO:
            pct = ZERO
            undefined = True
        else:
            pct = percentage(absolute, abs(previous))
            undefined = False

        return LineVariance(
            absolute=absolute,
            percentage=pct,
            trend=trend,
            significance=self._thresholds.classify(pct),
            percentage_undefined=undefined,
        )

    @traced_engine("variance", "1.0")
    def summarize(
        self,
        variances: Iterable[tuple[str, LineVariance]],
    ) -> VarianceSummary:
        """Counts by trend and the lines with the largest absolute moves."""
        total = increases = decreases = stable = significant = 0
        largest_up: tuple[Decimal, str] | None = None
        largest_down: tuple[Decimal, str] | None = None

        for line_code, variance in variances:
            total += 1
            if variance.trend == VarianceTrend.INCREASE:
                increases += 1
                if largest_up is None or variance.absolute > largest_up[0]:
                    largest_up = (variance.absolute, line_code)
            elif variance.trend == VarianceTrend.DECREASE:
                decreases += 1
                if largest_down is None or variance.absolute < largest_down[0]:
                    largest_down = (variance.absolute, line_code)
            else:
                stable += 1
            if variance.significance in (
                VarianceSignificance.HIGH,
                VarianceSignificance.CRITICAL,
            ):
                significant += 1

        return VarianceSummary(
            total_lines=total,
            increases=increases,
            decreases=decreases,
            stable=stable,
            significant=significant,
            largest_increase=largest_up[1] if largest_up else None,
            largest_decrease=largest_down[1] if largest_down else None,
        )
