from datetime import datetime, timezone
from data.database import Experiment, Result
from data.store import ExperimentStore
from models.experiments import ExperimentCreate, VariantCreate
from models.results import ResultCreate
from services.exceptions import ExperimentNotFound, ExperimentValidationError, InvalidStatusTransition, VariantNotFound
import logging

logger = logging.getLogger(__name__)

# Variant traffic percentages must add up to 100 within this tolerance
TRAFFIC_EPSILON = 0.01

# Allowed status moves. Forward only, except running <-> paused
STATUS_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"running", "archived"},
    "running": {"paused", "completed"},
    "paused": {"running", "completed"},
    "completed": {"archived"},
    "archived": set(),
}


def validate_variants(variants: list[VariantCreate]):
    """Raises ExperimentValidationError unless there is exactly one control and traffic sums to 100."""
    if not variants:
        raise ExperimentValidationError("An experiment needs at least one variant.")

    controls = [v for v in variants if v.is_control]
    if len(controls) != 1:
        raise ExperimentValidationError(f"Exactly one control variant is required, got {len(controls)}.")

    total_traffic = sum(v.traffic_percentage for v in variants)
    if abs(total_traffic - 100) > TRAFFIC_EPSILON:
        raise ExperimentValidationError(f"Variant traffic percentages must sum to 100%, got {total_traffic}%.")


# --- Experiment Creation ---
def create_new_experiment(store: ExperimentStore, tenant_id: str, experiment_data: ExperimentCreate) -> Experiment:
    """Creates a new draft experiment and its associated variants."""
    validate_variants(experiment_data.variants)

    fields = experiment_data.model_dump(exclude={"variants"})
    variants = [v.model_dump() for v in experiment_data.variants]
    db_experiment = store.create_experiment(tenant_id, fields, variants)

    logger.info("create new experiment %s success with experiment id: %d (tenant %s)",
                experiment_data.name, db_experiment.id, tenant_id)
    return db_experiment


def list_experiments(store: ExperimentStore, tenant_id: str) -> list[Experiment]:
    return store.list_experiments(tenant_id)


def get_experiment(store: ExperimentStore, tenant_id: str, experiment_id: int) -> Experiment:
    experiment = store.get_experiment(tenant_id, experiment_id)
    if not experiment:
        raise ExperimentNotFound(experiment_id)
    return experiment


# --- Status Lifecycle ---
def change_status(store: ExperimentStore, tenant_id: str, experiment_id: int, new_status: str) -> Experiment:
    """
    Moves the experiment to `new_status`.
    start_date is stamped on the first move into running only (resuming from
    paused keeps it), end_date is stamped when the experiment completes.
    """
    experiment = get_experiment(store, tenant_id, experiment_id)
    current = experiment.status

    if new_status not in STATUS_TRANSITIONS.get(current, set()):
        logger.info("Rejected status change %s -> %s for EID %d", current, new_status, experiment_id)
        raise InvalidStatusTransition(experiment_id, current, new_status)

    updates: dict = {"status": new_status}
    now = datetime.now(timezone.utc)
    if new_status == "running" and experiment.start_date is None:
        updates["start_date"] = now
    if new_status == "completed":
        updates["end_date"] = now

    experiment = store.update_experiment(tenant_id, experiment_id, **updates)
    logger.info("Experiment %d moved from %s to %s", experiment_id, current, new_status)
    return experiment


def start_experiment(store: ExperimentStore, tenant_id: str, experiment_id: int) -> Experiment:
    return change_status(store, tenant_id, experiment_id, "running")

def pause_experiment(store: ExperimentStore, tenant_id: str, experiment_id: int) -> Experiment:
    return change_status(store, tenant_id, experiment_id, "paused")

def complete_experiment(store: ExperimentStore, tenant_id: str, experiment_id: int) -> Experiment:
    return change_status(store, tenant_id, experiment_id, "completed")

def archive_experiment(store: ExperimentStore, tenant_id: str, experiment_id: int) -> Experiment:
    return change_status(store, tenant_id, experiment_id, "archived")


# --- Daily Rollups ---
def record_result(store: ExperimentStore, tenant_id: str, experiment_id: int, result_data: ResultCreate) -> Result:
    """Stores the daily rollup for a variant, a second rollup for the same day replaces the first."""
    get_experiment(store, tenant_id, experiment_id)

    rollup = result_data.model_dump(exclude={"variant_id"})
    result = store.upsert_result(tenant_id, experiment_id, result_data.variant_id, rollup)
    if result is None:
        raise VariantNotFound(experiment_id, result_data.variant_id)

    logger.debug("Recorded rollup for variant %d (EID %d) on %s", result_data.variant_id, experiment_id, result_data.date)
    return result


# --- Assignment Listings ---
def list_assignments(store: ExperimentStore, tenant_id: str, experiment_id: int):
    get_experiment(store, tenant_id, experiment_id)
    return store.list_assignments(tenant_id, experiment_id)


def get_visitor_experiments(store: ExperimentStore, tenant_id: str, visitor_id: str) -> list[dict]:
    """Every experiment the visitor is enrolled in, with the variant they see."""
    return [
        {"experiment": a.experiment, "variant": a.variant}
        for a in store.list_visitor_assignments(tenant_id, visitor_id)
    ]
