from dataclasses import dataclass
from data.database import Result
from data.store import DateRange, ExperimentStore
from models.results import VariantStats
from services.exceptions import ExperimentNotFound
import logging

logger = logging.getLogger(__name__)


@dataclass
class VariantTotals:
    visitors: int = 0
    conversions: int = 0
    revenue: float = 0.0

    @property
    def conversion_rate(self) -> float:
        """Percentage, 0 when the variant has no visitors."""
        return (self.conversions * 100 / self.visitors) if self.visitors > 0 else 0.0


def aggregate_totals(results: list[Result]) -> dict[int, VariantTotals]:
    """Sum daily rollups into lifetime totals keyed by variant id."""
    totals: dict[int, VariantTotals] = {}
    for r in results:
        total = totals.setdefault(r.variant_id, VariantTotals())
        total.visitors += r.visitors or 0
        total.conversions += r.conversions or 0
        total.revenue += r.revenue or 0.0
    return totals


def compute_improvement(conversion_rate: float, control_rate: float | None) -> float | None:
    """Relative change vs control in percent, None when the control rate is missing or zero."""
    if control_rate is None or control_rate <= 0:
        return None
    return round((conversion_rate - control_rate) / control_rate * 100, 2)


def compute_stats(
    store: ExperimentStore,
    calculator,
    tenant_id: str,
    experiment_id: int,
    date_range: DateRange | None = None
) -> list[VariantStats]:
    """
    Builds one stats record per variant, control included.
    Totals come from the rollups, rate, confidence and significance from the
    significance calculator, both restricted to `date_range` when one is given.
    attributed_conversions counts distinct converted assignments over the
    experiment's lifetime, conversions carry no date to window on.
    """
    experiment = store.get_experiment(tenant_id, experiment_id)
    if not experiment:
        raise ExperimentNotFound(experiment_id)

    variants = store.list_variants(tenant_id, experiment_id)
    totals = aggregate_totals(store.list_results(tenant_id, experiment_id, date_range))
    significance = {s.variant_id: s for s in calculator.compute_significance(tenant_id, experiment_id, date_range)}
    attributed = store.count_conversions(tenant_id, experiment_id)

    # Rates first, improvement needs the control's
    rates: dict[int, float] = {}
    for v in variants:
        sig = significance.get(v.id)
        rates[v.id] = sig.conversion_rate if sig else totals.get(v.id, VariantTotals()).conversion_rate

    control = next((v for v in variants if v.is_control), None)
    control_rate = rates[control.id] if control else None
    if control is None:
        logger.warning("Experiment %d has no control variant, improvement left unset", experiment_id)
    elif not control_rate:
        logger.info("Control conversion rate is 0 for EID %d, improvement left unset", experiment_id)

    stats = []
    for v in variants:
        total = totals.get(v.id, VariantTotals())
        sig = significance.get(v.id)
        stats.append(VariantStats(
            variant_id=v.id,
            variant_name=v.name,
            is_control=v.is_control,
            conversion_rate=round(rates[v.id], 4),
            confidence=sig.confidence if sig else 0.0,
            is_significant=sig.is_significant if sig else False,
            improvement=None if v.is_control else compute_improvement(rates[v.id], control_rate),
            total_visitors=total.visitors,
            total_conversions=total.conversions,
            total_revenue=round(total.revenue, 2),
            attributed_conversions=attributed.get(v.id, 0),
        ))

    logger.debug("computed stats for EID %d: %s", experiment_id, stats)
    return stats
