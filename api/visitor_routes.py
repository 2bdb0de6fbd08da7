from fastapi import APIRouter
from models.experiments import VisitorExperimentResponse
from services import experiments
from data.store import ExperimentStore
from api.depends import CLIENT_AUTH, TENANT, STORE

visitor_router = APIRouter(
    prefix="/tenants/{tenant_id}/visitors",
    tags=["visitors"],
    dependencies=[CLIENT_AUTH]
)

# GET /tenants/{tenant_id}/visitors/{visitor_id}/experiments
@visitor_router.get("/{visitor_id}/experiments", response_model=list[VisitorExperimentResponse])
def get_visitor_experiments_route(
    visitor_id: str,
    tenant_id: str = TENANT,
    store: ExperimentStore = STORE
):
    """Experiments the visitor is enrolled in, with the variant they see in each."""
    return experiments.get_visitor_experiments(store, tenant_id, visitor_id)
