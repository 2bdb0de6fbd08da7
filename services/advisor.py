from datetime import datetime, timezone
from data.store import ExperimentStore
from models.results import ExperimentAnalysis, RecommendedAction, VariantStats
from services.exceptions import ExperimentNotFound
from services.results import compute_stats
import logging

logger = logging.getLogger(__name__)

# Variants whose improvement moves by more than this many percent get a trend insight
TREND_THRESHOLD = 10


def pick_winner(stats: list[VariantStats], confidence_threshold: float) -> VariantStats | None:
    """Best qualifying non-control variant by improvement, or None."""
    candidates = [
        s for s in stats
        if not s.is_control
        and s.is_significant
        and s.improvement is not None
        and s.improvement > 0
        and s.confidence >= confidence_threshold
    ]
    return max(candidates, key=lambda s: s.improvement, default=None)


def analyze(
    store: ExperimentStore,
    calculator,
    tenant_id: str,
    experiment_id: int,
    override: RecommendedAction | None = None
) -> ExperimentAnalysis:
    """
    Recommends what to do with the experiment, recomputed on every call.

    - stop_winner: a significant, improving variant clears the confidence threshold
    - stop_inconclusive: sample size met but no variant reaches the threshold
    - continue: everything else

    `extend` is never chosen here. Callers apply it (or any other action) through
    `override`, a human decision that is echoed in the insights.
    """
    experiment = store.get_experiment(tenant_id, experiment_id)
    if not experiment:
        raise ExperimentNotFound(experiment_id)

    stats = compute_stats(store, calculator, tenant_id, experiment_id)

    winner = pick_winner(stats, experiment.confidence_threshold)
    max_confidence = max((s.confidence for s in stats), default=0.0)
    total_visitors = sum(s.total_visitors for s in stats)
    sample_size_met = total_visitors >= experiment.minimum_sample_size

    recommended_action = RecommendedAction.CONTINUE
    insights: list[str] = []

    if winner:
        recommended_action = RecommendedAction.STOP_WINNER
        insights.append(f'Variant "{winner.variant_name}" is showing significant improvement')
    elif sample_size_met and max_confidence < experiment.confidence_threshold:
        recommended_action = RecommendedAction.STOP_INCONCLUSIVE
        insights.append("No significant difference found with adequate sample size")
    elif not sample_size_met:
        insights.append(f"Need {experiment.minimum_sample_size - total_visitors} more visitors")

    for s in stats:
        if s.improvement is not None and abs(s.improvement) > TREND_THRESHOLD:
            trend = "positive" if s.improvement > 0 else "negative"
            insights.append(f'Variant "{s.variant_name}" showing {trend} trend ({s.improvement:+.1f}%)')

    if override is not None and override != recommended_action:
        insights.append(f"Recommendation overridden from {recommended_action.value} to {override.value}")
        logger.info("EID %d recommendation overridden: %s -> %s", experiment_id, recommended_action.value, override.value)
        recommended_action = override

    logger.info("EID %d analysis: action=%s winner=%s confidence=%.2f visitors=%d",
                experiment_id, recommended_action.value, winner.variant_id if winner else None,
                max_confidence, total_visitors)

    return ExperimentAnalysis(
        experiment_id=experiment_id,
        winner=winner.variant_id if winner else None,
        winner_name=winner.variant_name if winner else None,
        confidence=max_confidence,
        sample_size_met=sample_size_met,
        total_visitors=total_visitors,
        recommended_action=recommended_action,
        insights=insights,
        stats=stats,
        report_generated_at=datetime.now(timezone.utc),
    )
