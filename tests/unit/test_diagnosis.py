import pytest
from cds.services.diagnosis import DifferentialDiagnosisGenerator

@pytest.fixture
def generator():
    return DifferentialDiagnosisGenerator()

def test_chest_pain_alone(generator, make_context):
    diagnoses = generator.generate(make_context(symptoms=["chest pain"]))

    # Angina / PE have no known presentation and stay at the base probability
    assert [d.condition for d in diagnoses] == ["myocardial infarction"]
    mi = diagnoses[0]
    assert mi.probability == pytest.approx(0.1 + 0.4 / 3)
    assert mi.urgency == "routine"
    assert mi.supporting_evidence == ["Symptom: chest pain"]
    assert mi.contradicting_evidence == []
    assert mi.next_steps == ["ECG", "Troponin levels", "Chest X-ray"]

def test_full_mi_presentation(generator, mi_context):
    diagnoses = generator.generate(mi_context)

    assert [d.condition for d in diagnoses] == ["myocardial infarction", "pneumonia"]
    assert diagnoses[0].probability == pytest.approx(0.5)
    # 0.5 is not above the emergent cut-off
    assert diagnoses[0].urgency == "routine"
    assert diagnoses[1].probability == pytest.approx(0.1 + 0.4 / 3)
    assert diagnoses[1].next_steps == ["Chest X-ray", "Blood cultures", "Sputum culture"]

def test_each_condition_listed_once(generator, make_context):
    # Both symptoms map to pneumonia
    diagnoses = generator.generate(make_context(symptoms=["fever", "shortness of breath", "cough"]))
    conditions = [d.condition for d in diagnoses]
    assert conditions.count("pneumonia") == 1
    assert diagnoses[0].condition == "pneumonia"
    assert diagnoses[0].probability == pytest.approx(0.5)
    assert diagnoses[0].supporting_evidence == ["Symptom: fever"]

def test_only_first_three_symptoms_drive_candidates(generator, make_context):
    context = make_context(symptoms=["headache", "dizziness", "fatigue", "chest pain"])
    assert generator.generate(context) == []

def test_symptom_lookup_is_case_insensitive(generator, make_context):
    diagnoses = generator.generate(make_context(symptoms=["Chest Pain"]))
    assert diagnoses[0].condition == "myocardial infarction"

def test_probability_capped(generator, make_context):
    # Repeated mentions push the raw symptom fraction well over 1
    context = make_context(symptoms=[
        "fever", "cough", "shortness of breath", "fever spikes", "dry cough", "night cough", "high fever"
    ])
    diagnoses = generator.generate(context)
    assert diagnoses[0].condition == "pneumonia"
    assert diagnoses[0].probability == pytest.approx(0.95)

def test_emergent_urgency_requires_allowlist_and_probability(generator):
    assert generator.urgency("myocardial infarction", 0.51) == "emergent"
    assert generator.urgency("myocardial infarction", 0.5) == "routine"
    assert generator.urgency("pneumonia", 0.9) == "routine"

def test_results_sorted_and_bounded(generator, make_context):
    diagnoses = generator.generate(make_context(symptoms=["shortness of breath", "chest pain", "fever"]))
    probabilities = [d.probability for d in diagnoses]
    assert probabilities == sorted(probabilities, reverse=True)
    assert len(diagnoses) <= 10
    assert all(0.1 < p <= 0.95 for p in probabilities)

def test_no_symptoms_no_diagnoses(generator, make_context):
    assert generator.generate(make_context()) == []
