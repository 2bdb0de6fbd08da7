from fastapi import Depends
from sqlalchemy.orm import Session
from services.cache import get_cache_client
from services.significance import get_significance_calculator
from auth.security import get_current_client, get_tenant_id
from data.database import get_db
from data.store import SqlExperimentStore


def get_store(db: Session = Depends(get_db)):
    """Tenant-scoped store bound to the request's database session."""
    return SqlExperimentStore(db)


def get_calculator(store: SqlExperimentStore = Depends(get_store)):
    return get_significance_calculator(store)


# --- DEPENDENCY INJECTION SETUP ---
CLIENT_AUTH = Depends(get_current_client)
TENANT = Depends(get_tenant_id)
STORE = Depends(get_store)
CALCULATOR = Depends(get_calculator)
CACHE_CLIENT = Depends(get_cache_client)
