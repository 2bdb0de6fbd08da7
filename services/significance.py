"""
Significance calculators.

The analysis path treats the calculator as an opaque, authoritative source of
per-variant conversion rate, confidence (0-100) and significance. Calculators
are deterministic for a fixed snapshot of result rollups and never write.
When a date range is given only the rollups inside it are considered.
"""
from abc import ABC, abstractmethod
from scipy.stats import norm
from data.store import DateRange, ExperimentStore
from models.results import VariantSignificance
from services.results import aggregate_totals
from config import config
import math
import logging

logger = logging.getLogger(__name__)


class SignificanceCalculator(ABC):
    """Strategy interface, swap implementations without touching the aggregator."""

    name = "base"

    def __init__(self, store: ExperimentStore):
        self.store = store

    @abstractmethod
    def compute_significance(self, tenant_id: str, experiment_id: int, date_range: DateRange | None = None) -> list[VariantSignificance]:
        ...


class HeuristicSignificanceCalculator(SignificanceCalculator):
    """
    Reproduces the hosted `calculate_experiment_stats` procedure:
    confidence grows by one point per hundred visitors from 50 (capped at 99.9)
    once a variant has more than 100 visitors, and a variant is significant when
    its rate differs from the control's by more than half a percentage point.
    Only variants with rollups are reported, and nothing is reported without control data.
    """

    name = "heuristic"

    MIN_VISITORS = 100
    MAX_CONFIDENCE = 99.9
    MIN_RATE_DIFFERENCE = 0.5

    def compute_significance(self, tenant_id: str, experiment_id: int, date_range: DateRange | None = None) -> list[VariantSignificance]:
        variants = self.store.list_variants(tenant_id, experiment_id)
        totals = aggregate_totals(self.store.list_results(tenant_id, experiment_id, date_range))

        control = next((v for v in variants if v.is_control and v.id in totals), None)
        if control is None:
            logger.debug("heuristic significance EID %d: no control data", experiment_id)
            return []

        control_rate = totals[control.id].conversion_rate

        output = []
        for variant in variants:
            if variant.id not in totals:
                continue
            total = totals[variant.id]
            enough_traffic = total.visitors > self.MIN_VISITORS
            confidence = min(self.MAX_CONFIDENCE, 50 + total.visitors // 100) if enough_traffic else 0.0
            output.append(VariantSignificance(
                variant_id=variant.id,
                conversion_rate=total.conversion_rate,
                confidence=confidence,
                is_significant=enough_traffic and abs(total.conversion_rate - control_rate) > self.MIN_RATE_DIFFERENCE,
            ))
        return output


class ZTestSignificanceCalculator(SignificanceCalculator):
    """
    Two-sided two-proportion z-test of each variant against the control,
    with a pooled standard error. Confidence is (1 - p_value) * 100 and a variant
    is significant once that reaches the experiment's confidence threshold.
    The control is reported with confidence 0.
    """

    name = "ztest"

    def compute_significance(self, tenant_id: str, experiment_id: int, date_range: DateRange | None = None) -> list[VariantSignificance]:
        experiment = self.store.get_experiment(tenant_id, experiment_id)
        if experiment is None:
            return []

        variants = self.store.list_variants(tenant_id, experiment_id)
        totals = aggregate_totals(self.store.list_results(tenant_id, experiment_id, date_range))
        control = next((v for v in variants if v.is_control), None)
        control_total = totals.get(control.id) if control else None

        output = []
        for variant in variants:
            total = totals.get(variant.id)
            if total is None:
                continue

            confidence = 0.0
            if not variant.is_control and control_total is not None:
                confidence = self._confidence(
                    control_total.conversions, control_total.visitors,
                    total.conversions, total.visitors
                )

            output.append(VariantSignificance(
                variant_id=variant.id,
                conversion_rate=total.conversion_rate,
                confidence=confidence,
                is_significant=not variant.is_control and confidence >= experiment.confidence_threshold,
            ))
        return output

    @staticmethod
    def _confidence(control_conversions: int, control_visitors: int, conversions: int, visitors: int) -> float:
        if control_visitors == 0 or visitors == 0:
            return 0.0

        pooled = (control_conversions + conversions) / (control_visitors + visitors)
        std_error = math.sqrt(pooled * (1 - pooled) * (1 / control_visitors + 1 / visitors))
        if std_error == 0:
            return 0.0

        z_score = (conversions / visitors - control_conversions / control_visitors) / std_error
        p_value = 2 * norm.sf(abs(z_score))
        return round(float((1 - p_value) * 100), 2)


SIGNIFICANCE_CALCULATORS: dict[str, type[SignificanceCalculator]] = {
    HeuristicSignificanceCalculator.name: HeuristicSignificanceCalculator,
    ZTestSignificanceCalculator.name: ZTestSignificanceCalculator,
}


def get_significance_calculator(store: ExperimentStore, method: str | None = None) -> SignificanceCalculator:
    method = method or config.significance_method
    if method not in SIGNIFICANCE_CALCULATORS:
        raise ValueError(f"Unknown significance method '{method}', expected one of {sorted(SIGNIFICANCE_CALCULATORS)}")
    return SIGNIFICANCE_CALCULATORS[method](store)
