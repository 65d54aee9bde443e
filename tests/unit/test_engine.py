import pytest
from pydantic import ValidationError

from cds.core.config import PipelineConfig, Settings
from cds.db.models import AlertRecord, AuditLog
from cds.schemas.context import ClinicalContext, LabResult, Medication, Vitals
from cds.schemas.results import CDSOptions, SessionRecord
from cds.services.engine import ClinicalDecisionSupportEngine, ClinicalDecisionSupportError

def _comparable(result):
    """Everything except timestamps and ids that are unique per run."""
    return {
        "risk": [r.model_dump() for r in result.risk_predictions],
        "diagnoses": [d.model_dump() for d in result.differential_diagnoses],
        "interactions": [i.model_dump() for i in result.drug_interactions],
        "recommendations": [r.model_dump() for r in result.recommendations],
    }

# --- Scenarios ---

def test_chest_pain_elderly_with_troponin(engine, make_context):
    context = make_context(
        age=70,
        symptoms=["chest pain"],
        lab_results=[LabResult(test="Troponin", value=0.8, abnormal=True)],
    )
    result = engine.evaluate(context)

    mi_risk = next(r for r in result.risk_predictions if r.condition == "myocardial_infarction")
    assert mi_risk.risk_score == pytest.approx(0.9)
    assert "myocardial infarction" in [d.condition for d in result.differential_diagnoses]
    assert result.alerts[0].message == "High risk for myocardial_infarction: 90.0%"

def test_full_mi_presentation_yields_recommendation(engine, mi_context):
    result = engine.evaluate(mi_context)

    mi = result.differential_diagnoses[0]
    assert mi.condition == "myocardial infarction"
    assert mi.probability > 0.3

    assert len(result.recommendations) == 1
    rec = result.recommendations[0]
    assert rec.type == "diagnostic"
    assert rec.priority == "high" # probability 0.5 is not above the emergent cut-off
    assert rec.title == "Evaluate for myocardial infarction"

    assert [a.type for a in result.alerts] == ["safety"]
    assert result.explainability.model_version == "v-test"
    assert result.explainability.confidence.overall == pytest.approx((0.5 + (0.5 + 0.1 + 0.4 / 3) / 2) / 2)

def test_warfarin_then_aspirin(engine, anticoagulated_context):
    result = engine.evaluate(anticoagulated_context)

    assert len(result.drug_interactions) == 1
    interaction = result.drug_interactions[0]
    assert (interaction.severity, interaction.drug1, interaction.drug2) == ("major", "warfarin", "aspirin")
    assert [a.type for a in result.alerts] == ["drug_interaction"]

def test_aspirin_then_warfarin_detected_too(engine, make_context):
    context = make_context(current_medications=[Medication(name="aspirin"), Medication(name="warfarin")])
    result = engine.evaluate(context)

    assert len(result.drug_interactions) == 1
    assert result.drug_interactions[0].severity == "major"

def test_empty_context_produces_empty_outputs(engine, make_context):
    result = engine.evaluate(make_context())

    assert result.risk_predictions == []
    assert result.differential_diagnoses == []
    assert result.drug_interactions == []
    assert result.alerts == []
    assert result.recommendations == []
    assert result.explainability.confidence.overall is None

# --- Properties ---

def test_identical_contexts_give_identical_results(engine, mi_context):
    first = engine.evaluate(mi_context)
    second = engine.evaluate(mi_context)

    assert first.session_id != second.session_id
    assert _comparable(first) == _comparable(second)

def test_all_scores_within_unit_interval(engine, make_context):
    context = make_context(
        age=95,
        symptoms=["chest pain", "fever", "shortness of breath", "nausea", "cough"],
        vitals=Vitals(temperature=41, heart_rate=150, respiratory_rate=30, oxygen_saturation=85),
        lab_results=[
            LabResult(test="WBC", value=40000, abnormal=True),
            LabResult(test="Troponin", value=10, abnormal=True),
        ],
        current_medications=[Medication(name="warfarin"), Medication(name="aspirin")],
    )
    result = engine.evaluate(context)

    scores = (
        [r.risk_score for r in result.risk_predictions]
        + [d.probability for d in result.differential_diagnoses]
        + [r.confidence for r in result.recommendations]
    )
    assert scores
    assert all(0.0 <= s <= 1.0 for s in scores)
    assert [r.risk_score for r in result.risk_predictions] == sorted(
        [r.risk_score for r in result.risk_predictions], reverse=True
    )
    assert len(result.differential_diagnoses) <= 10

def test_options_cap_recommendations(engine, make_context):
    context = make_context(symptoms=["shortness of breath", "chest pain", "fever"])
    capped = engine.evaluate(context, CDSOptions(max_recommendations=1))
    assert len(capped.recommendations) == 1

def test_context_validation_rejects_impossible_values():
    with pytest.raises(ValidationError):
        ClinicalContext(patient_id="p", age=-1, sex="male")
    with pytest.raises(ValidationError):
        ClinicalContext(patient_id="p", age=40, sex="male", vitals={"oxygen_saturation": 140})

def test_context_is_immutable(make_context):
    context = make_context()
    with pytest.raises(ValidationError):
        context.age = 99

# --- Failure handling ---

def test_stage_failure_is_wrapped(engine, make_context, monkeypatch):
    def boom(context):
        raise RuntimeError("risk model unavailable")

    monkeypatch.setattr(engine.risk_predictor, "predict", boom)

    with pytest.raises(ClinicalDecisionSupportError) as exc_info:
        engine.evaluate(make_context())

    assert str(exc_info.value) == "Clinical decision support failed: risk model unavailable"
    assert isinstance(exc_info.value.cause, RuntimeError)

# --- Side effects ---

@pytest.mark.asyncio
async def test_generate_recommendations_side_effects(engine, mi_context, mock_db, mock_session_cache, mock_usage_meter):
    result = await engine.generate_recommendations("tenant-a", mi_context, db=mock_db)

    staged = [call.args[0] for call in mock_db.add.call_args_list]
    # Audit first, then the alert rows
    assert isinstance(staged[0], AuditLog)
    assert staged[0].tenant_id == "tenant-a"
    assert staged[0].session_id == result.session_id
    assert staged[0].action == "generate_recommendations"
    assert [type(s) for s in staged[1:]] == [AlertRecord] * len(result.alerts)

    usage = mock_usage_meter.record.await_args.args[0]
    assert usage.tenant_id == "tenant-a"
    assert usage.compute_units == 10 + 3 * 2 + 1 * 3 + len(result.recommendations) * 5

    record = mock_session_cache.cache_session.await_args.args[0]
    assert isinstance(record, SessionRecord)
    assert record.session_id == result.session_id
    assert record.context == mi_context

@pytest.mark.asyncio
async def test_side_effect_failures_are_best_effort(engine, anticoagulated_context, mock_session_cache, mock_usage_meter):
    mock_session_cache.cache_session.side_effect = ConnectionError("redis down")
    mock_usage_meter.record.side_effect = ConnectionError("redis down")

    result = await engine.generate_recommendations("tenant-a", anticoagulated_context)

    assert len(result.drug_interactions) == 1

@pytest.mark.asyncio
async def test_strict_side_effects_fail_the_call(mock_session_cache, mock_usage_meter, anticoagulated_context):
    engine = ClinicalDecisionSupportEngine(
        PipelineConfig(strict_side_effects=True),
        session_cache=mock_session_cache,
        usage_meter=mock_usage_meter,
    )
    mock_session_cache.cache_session.side_effect = ConnectionError("redis down")

    with pytest.raises(ClinicalDecisionSupportError, match="redis down"):
        await engine.generate_recommendations("tenant-a", anticoagulated_context)

@pytest.mark.asyncio
async def test_strict_mode_fails_on_audit_failure(mock_db, anticoagulated_context):
    engine = ClinicalDecisionSupportEngine(PipelineConfig(strict_side_effects=True))
    mock_db.add.side_effect = RuntimeError("audit table locked")

    with pytest.raises(ClinicalDecisionSupportError, match="audit table locked"):
        await engine.generate_recommendations("tenant-a", anticoagulated_context, db=mock_db)

@pytest.mark.asyncio
async def test_audit_failure_is_best_effort_by_default(engine, mock_db, anticoagulated_context):
    mock_db.add.side_effect = RuntimeError("audit table locked")

    result = await engine.generate_recommendations("tenant-a", anticoagulated_context, db=mock_db)

    assert len(result.drug_interactions) == 1

@pytest.mark.asyncio
async def test_library_use_without_collaborators(make_context):
    engine = ClinicalDecisionSupportEngine(PipelineConfig())
    result = await engine.generate_recommendations("tenant-a", make_context(symptoms=["fever"]))
    assert result.session_id.startswith("cds_")

def test_pipeline_config_from_settings():
    config = PipelineConfig.from_settings(Settings(CDS_MODEL_VERSION="v9", CDS_MAX_RECOMMENDATIONS=4))
    assert config.model_version == "v9"
    assert config.max_recommendations == 4
    assert config.catalog_version
