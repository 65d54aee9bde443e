from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
import pytest
from httpx import AsyncClient, ASGITransport

from cds.main import app
from cds.core.config import PipelineConfig
from cds.core.engine_factory import get_cds_engine
from cds.db.session import get_db
from cds.schemas.context import ClinicalContext, LabResult, Medication
from cds.services.engine import ClinicalDecisionSupportEngine

# --- Clinical context builders ---

@pytest.fixture
def make_context():
    """
    Builds a ClinicalContext with sane defaults; keyword overrides win.
    """
    def _make(**overrides) -> ClinicalContext:
        data = {"patient_id": "pat-1", "age": 40, "sex": "female"}
        data.update(overrides)
        return ClinicalContext(**data)
    return _make

@pytest.fixture
def mi_context(make_context):
    # Elderly patient with the full MI presentation and a positive troponin
    return make_context(
        age=70,
        sex="male",
        symptoms=["chest pain", "shortness of breath", "nausea"],
        lab_results=[LabResult(test="Troponin I", value=0.9, unit="ng/mL", abnormal=True)],
    )

@pytest.fixture
def anticoagulated_context(make_context):
    return make_context(
        current_medications=[Medication(name="warfarin"), Medication(name="aspirin")]
    )

# --- Collaborators ---

@pytest.fixture
def pipeline_config():
    return PipelineConfig(model_version="v-test", catalog_version="catalog-test")

@pytest.fixture
def mock_db():
    """
    AsyncSession stand-in: add() is sync, everything else is awaited.
    """
    db = AsyncMock()
    db.add = MagicMock()
    return db

@pytest.fixture
def mock_session_cache():
    cache = AsyncMock()
    cache.get_session.return_value = None
    return cache

@pytest.fixture
def mock_usage_meter():
    return AsyncMock()

@pytest.fixture
def engine(pipeline_config, mock_session_cache, mock_usage_meter):
    return ClinicalDecisionSupportEngine(
        pipeline_config,
        session_cache=mock_session_cache,
        usage_meter=mock_usage_meter,
    )

# --- API ---

@pytest.fixture(scope="function")
async def client(mock_db, engine) -> AsyncGenerator[AsyncClient, None]:
    """
    FastAPI test client with the database session and the engine overridden.
    """
    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cds_engine] = lambda: engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
