import pytest
import uuid
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from data.database import Base, get_db
from main import app  # import your FastAPI app
from services.cache import get_cache_client, get_mock_cache_client
from config import config

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

SERVICE_TOKEN = "fake-client-token"
TENANT_A_TOKEN = "tenant-a-token"
config.valid_tokens = {SERVICE_TOKEN: None, TENANT_A_TOKEN: "tenant-a"}

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Dependency override for DB
def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

# One in-memory cache for the whole run, like a shared Valkey instance
_TEST_CACHE = get_mock_cache_client()

def override_get_cache_client():
    return _TEST_CACHE

app.dependency_overrides[get_cache_client] = override_get_cache_client

@pytest.fixture(autouse=True, scope="session")
def setup_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c

@pytest.fixture
def headers():
    return {"Authorization": f"Bearer {SERVICE_TOKEN}"}

@pytest.fixture
def tenant_id():
    # Fresh tenant per test keeps listings independent of test order
    return f"tenant-{uuid.uuid4().hex[:8]}"

@pytest.fixture
def experiment_payload():
    return {
        "name": "Homepage Test",
        "description": "A/B test on homepage hero",
        "type": "visual",
        "metric": "purchase",
        "minimum_sample_size": 1000,
        "confidence_threshold": 95,
        "variants": [
            {"name": "Control", "is_control": True, "traffic_percentage": 50, "config": {"color": "blue"}},
            {"name": "Treatment", "traffic_percentage": 50, "config": {"color": "red"}}
        ]
    }
