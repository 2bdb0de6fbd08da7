from data.store import ExperimentStore
import logging

logger = logging.getLogger(__name__)


def record_conversion(
    store: ExperimentStore,
    tenant_id: str,
    experiment_id: int,
    visitor_id: str,
    value: float | None = None
) -> bool:
    """
    Marks the visitor's assignment as converted. Returns False when the visitor
    was never assigned, the conversion cannot be attributed and nothing is written.
    Repeated calls only overwrite the value, the assignment stays a single converted row.
    """
    assignment = store.update_assignment_conversion(tenant_id, experiment_id, visitor_id, value)
    if assignment is None:
        logger.warning("Unattributed conversion: visitor %s has no assignment on EID %d (tenant %s).",
                       visitor_id, experiment_id, tenant_id)
        return False

    logger.info("Conversion recorded for visitor %s on EID %d, variant %d, value %s",
                visitor_id, experiment_id, assignment.variant_id, value)
    return True
