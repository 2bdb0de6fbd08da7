from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from datetime import date, timedelta

from models.experiments import (
    ExperimentCreate, ExperimentResponse, ExperimentDetailResponse, ExperimentAssignmentResponse,
    AssignmentResponse, StatusUpdate, VariantResponse
)
from models.results import ExperimentAnalysis, RecommendedAction, ResultCreate, ResultResponse, VariantStats
from services import advisor, assignment, experiments, results
from services.cache import CacheClient
from services.significance import SignificanceCalculator
from data.store import ExperimentStore
from api.depends import CLIENT_AUTH, TENANT, STORE, CALCULATOR, CACHE_CLIENT

import logging

logger = logging.getLogger(__name__)

experiment_router = APIRouter(
    prefix="/tenants/{tenant_id}/experiments",
    tags=["experiments"],
    dependencies=[CLIENT_AUTH], # CLIENT_AUTH is applied to all routes in this router
)


# POST /tenants/{tenant_id}/experiments
@experiment_router.post(
    "",
    response_model=ExperimentDetailResponse,
    status_code=status.HTTP_201_CREATED
)
def create_experiment_route(
    experiment_data: ExperimentCreate,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE
):
    """Create a new draft experiment with variants and traffic allocation."""
    return experiments.create_new_experiment(store, tenant_id, experiment_data)


# GET /tenants/{tenant_id}/experiments
@experiment_router.get("", response_model=list[ExperimentResponse])
def list_experiments_route(
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE
):
    return experiments.list_experiments(store, tenant_id)


# GET /tenants/{tenant_id}/experiments/{experiment_id}
@experiment_router.get("/{experiment_id}", response_model=ExperimentDetailResponse)
def get_experiment_route(
    experiment_id: int,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE
):
    return experiments.get_experiment(store, tenant_id, experiment_id)


# POST /tenants/{tenant_id}/experiments/{experiment_id}/status
@experiment_router.post("/{experiment_id}/status", response_model=ExperimentResponse)
def change_status_route(
    experiment_id: int,
    update: StatusUpdate,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE
):
    """Move the experiment through draft -> running <-> paused -> completed -> archived."""
    return experiments.change_status(store, tenant_id, experiment_id, update.status)


# GET /tenants/{tenant_id}/experiments/{experiment_id}/variants
@experiment_router.get("/{experiment_id}/variants", response_model=list[VariantResponse])
def list_variants_route(
    experiment_id: int,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE
):
    experiments.get_experiment(store, tenant_id, experiment_id)
    return store.list_variants(tenant_id, experiment_id)


# GET /tenants/{tenant_id}/experiments/{experiment_id}/assignment/{visitor_id} (The Idempotent Logic)
@experiment_router.get("/{experiment_id}/assignment/{visitor_id}", response_model=ExperimentAssignmentResponse)
def get_visitor_assignment_route(
    experiment_id: int,
    visitor_id: str,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE,
    cache: CacheClient = CACHE_CLIENT
):
    """Get the visitor's variant. Performs assignment if none exists."""
    variant = assignment.assign(store, cache, tenant_id, experiment_id, visitor_id)
    return ExperimentAssignmentResponse(
        experiment_id=experiment_id,
        visitor_id=visitor_id,
        variant_id=variant.id,
        variant_name=variant.name,
        is_control=variant.is_control,
        config=variant.config or {},
    )


# GET /tenants/{tenant_id}/experiments/{experiment_id}/assignments
@experiment_router.get("/{experiment_id}/assignments", response_model=list[AssignmentResponse])
def list_assignments_route(
    experiment_id: int,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE
):
    return experiments.list_assignments(store, tenant_id, experiment_id)


# POST /tenants/{tenant_id}/experiments/{experiment_id}/results
@experiment_router.post("/{experiment_id}/results", response_model=ResultResponse, status_code=status.HTTP_201_CREATED)
def record_result_route(
    experiment_id: int,
    result_data: ResultCreate,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE
):
    """Store a daily rollup for one variant (upsert on variant and date)."""
    return experiments.record_result(store, tenant_id, experiment_id, result_data)


# GET /tenants/{tenant_id}/experiments/{experiment_id}/stats
@experiment_router.get("/{experiment_id}/stats", response_model=list[VariantStats])
def get_experiment_stats_route(
    experiment_id: int,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE,
    calculator: SignificanceCalculator = CALCULATOR,
    start_date: str | None = None,      # YYYY-MM-DD
    end_date: str | None = None,        # YYYY-MM-DD
    last_day: int | None = None         # eg: 7 for 7day
):
    """
    Per-variant lifetime statistics, optionally restricted to a window of daily rollups.
    """
    date_range = None

    try:
        # last days will override start_date/end_date
        if last_day:
            today = date.today()
            date_range = (today - timedelta(days=last_day), today)
        elif start_date or end_date:
            start = date.fromisoformat(start_date) if start_date else date.min
            end = date.fromisoformat(end_date) if end_date else date.max
            date_range = (start, end)
    except ValueError as e:
        logger.info("date conversion ValueError error: %s", str(e))
        return JSONResponse(content={"status": "failed", "error": str(e)}, status_code=status.HTTP_400_BAD_REQUEST)

    return results.compute_stats(store, calculator, tenant_id, experiment_id, date_range)


# GET /tenants/{tenant_id}/experiments/{experiment_id}/analysis
@experiment_router.get("/{experiment_id}/analysis", response_model=ExperimentAnalysis)
def get_experiment_analysis_route(
    experiment_id: int,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE,
    calculator: SignificanceCalculator = CALCULATOR,
    override: RecommendedAction | None = None
):
    """Recommended action and insights for the experiment."""
    return advisor.analyze(store, calculator, tenant_id, experiment_id, override=override)
