import pytest

from services.drug_interactions import (
    CATEGORY_RULES,
    INTERACTION_TABLE,
    Severity,
    categories_for,
    check_interactions,
    interaction_from_classes,
    lookup_category,
    lookup_static,
    validate_medicines,
)
from services.errors import UpstreamError, ValidationError


class FakeClassLookup:
    def __init__(self, classes: dict[str, str | None], failing: set[str] | None = None):
        self.classes = classes
        self.failing = failing or set()
        self.calls: list[str] = []

    async def __call__(self, name: str) -> str | None:
        self.calls.append(name)
        if name in self.failing:
            raise UpstreamError("reference store unavailable")
        return self.classes.get(name)


def _severity(result):
    return result.interaction.severity if result.interaction else None


@pytest.mark.anyio
async def test_known_static_pair_is_high():
    results = await check_interactions(["warfarin", "aspirin"])
    assert len(results) == 1
    assert results[0].drug1 == "warfarin"
    assert results[0].drug2 == "aspirin"
    assert results[0].interaction.severity == Severity.HIGH


@pytest.mark.anyio
async def test_unknown_names_resolve_to_none():
    lookup = FakeClassLookup({})
    results = await check_interactions(["paracetamol", "vitamin c"], lookup)
    assert results[0].interaction is None
    assert sorted(lookup.calls) == ["paracetamol", "vitamin c"]


@pytest.mark.anyio
async def test_nsaid_pair_falls_back_to_category_rule():
    assert lookup_static("ibuprofen", "naproxen") is None
    results = await check_interactions(["ibuprofen", "naproxen"])
    assert results[0].interaction.severity == Severity.HIGH
    assert results[0].interaction is CATEGORY_RULES[0].interaction


def test_static_lookup_checks_both_orders():
    assert "clarithromycin" not in INTERACTION_TABLE
    forward = lookup_static("simvastatin", "clarithromycin")
    backward = lookup_static("clarithromycin", "simvastatin")
    assert forward is backward
    assert forward.severity == Severity.HIGH


@pytest.mark.parametrize(
    ("drug_a", "drug_b", "severity"),
    [
        ("naproxen", "heparin", Severity.HIGH),
        ("apixaban", "heparin", Severity.HIGH),
        ("enalapril", "naproxen", Severity.MODERATE),
        ("calcium carbonate", "ciprofloxacin", Severity.MODERATE),
        ("cetirizine", "loratadine", Severity.MODERATE),
    ],
)
def test_category_rules(drug_a, drug_b, severity):
    assert lookup_category(drug_a, drug_b).severity == severity
    assert lookup_category(drug_b, drug_a).severity == severity


def test_category_rules_need_distinct_names_for_same_class_pairs():
    assert lookup_category("ibuprofen", "ibuprofen") is None
    assert lookup_category("cetirizine", "cetirizine") is None


def test_no_rule_for_beta_blockers_and_diuretics():
    assert categories_for("metoprolol") == ["beta_blockers"]
    assert categories_for("furosemide") == ["diuretics"]
    assert lookup_category("metoprolol", "furosemide") is None


def test_category_membership_is_bidirectional_substring():
    assert "blood_thinners" in categories_for("warfarin sodium")
    assert "nsaids" in categories_for("profen")
    assert categories_for("paracetamol") == []


@pytest.mark.anyio
async def test_pairs_preserve_input_order_and_strings():
    medicines = ["  Warfarin ", "ASPIRIN", "Vitamin D"]
    results = await check_interactions(medicines)
    assert [(r.drug1, r.drug2) for r in results] == [
        ("  Warfarin ", "ASPIRIN"),
        ("  Warfarin ", "Vitamin D"),
        ("ASPIRIN", "Vitamin D"),
    ]
    assert _severity(results[0]) == Severity.HIGH


@pytest.mark.anyio
async def test_case_insensitive_verdicts():
    upper = await check_interactions(["Warfarin", "ASPIRIN"])
    lower = await check_interactions(["warfarin", "aspirin"])
    assert upper[0].interaction == lower[0].interaction


@pytest.mark.anyio
async def test_symmetry_across_layers():
    lookup = FakeClassLookup({"metolar": "Beta-blocker", "tenormin": "Beta-blocker"})
    pairs = [
        ("warfarin", "ibuprofen"),
        ("naproxen", "heparin"),
        ("ciprofloxacin", "antacid"),
        ("metolar", "tenormin"),
        ("paracetamol", "vitamin c"),
    ]
    for drug_a, drug_b in pairs:
        forward = await check_interactions([drug_a, drug_b], lookup)
        backward = await check_interactions([drug_b, drug_a], lookup)
        assert forward[0].interaction == backward[0].interaction
        assert (backward[0].drug1, backward[0].drug2) == (drug_b, drug_a)


@pytest.mark.anyio
async def test_twenty_names_give_190_results():
    names = [f"drug-{index}" for index in range(20)]
    results = await check_interactions(names)
    assert len(results) == 190
    assert (results[0].drug1, results[0].drug2) == ("drug-0", "drug-1")
    assert (results[19].drug1, results[19].drug2) == ("drug-1", "drug-2")
    assert (results[-1].drug1, results[-1].drug2) == ("drug-18", "drug-19")


@pytest.mark.anyio
async def test_result_count_is_n_choose_2():
    for n in range(2, 8):
        results = await check_interactions([f"med{i}" for i in range(n)])
        assert len(results) == n * (n - 1) // 2


@pytest.mark.parametrize(
    "medicines",
    [
        ["warfarin"],
        [f"drug-{index}" for index in range(21)],
        ["warfarin", "   "],
        ["warfarin", "x" * 101],
        [],
    ],
)
def test_validation_rejects_bad_input(medicines):
    with pytest.raises(ValidationError) as excinfo:
        validate_medicines(medicines)
    assert excinfo.value.details


def test_validation_accepts_trimmed_length():
    validate_medicines(["warfarin", "  " + "x" * 100 + "  "])


@pytest.mark.anyio
async def test_external_fallback_same_prone_class_is_moderate():
    lookup = FakeClassLookup({"metolar": "Beta-blocker", "tenormin": "Beta-Blocker"})
    results = await check_interactions(["Metolar", "Tenormin"], lookup)
    assert results[0].interaction.severity == Severity.MODERATE
    assert "beta-blocker" in results[0].interaction.description


@pytest.mark.anyio
async def test_external_fallback_bleeding_risk():
    lookup = FakeClassLookup({
        "warf 5": "Anticoagulant",
        "brufen": "NSAID",
        "ecosprin": "Antiplatelet",
    })
    results = await check_interactions(["warf 5", "brufen", "ecosprin"], lookup)
    assert _severity(results[0]) == Severity.HIGH
    assert _severity(results[1]) == Severity.HIGH
    assert results[2].interaction is None


@pytest.mark.anyio
async def test_external_fallback_skipped_when_local_rule_fires():
    lookup = FakeClassLookup({})
    await check_interactions(["warfarin", "aspirin", "ibuprofen"], lookup)
    assert lookup.calls == []


@pytest.mark.anyio
async def test_each_name_is_looked_up_once():
    lookup = FakeClassLookup({})
    await check_interactions(["alpha", "beta", "gamma", "delta"], lookup)
    assert sorted(lookup.calls) == ["alpha", "beta", "delta", "gamma"]


@pytest.mark.anyio
async def test_upstream_failure_only_degrades_affected_pairs():
    lookup = FakeClassLookup(
        {"metolar": "Beta-blocker", "tenormin": "Beta-blocker", "lopressor": "Beta-blocker"},
        failing={"lopressor"},
    )
    results = await check_interactions(["metolar", "tenormin", "lopressor"], lookup)
    assert _severity(results[0]) == Severity.MODERATE
    assert results[1].interaction is None
    assert results[2].interaction is None


def test_interaction_from_classes():
    assert interaction_from_classes(None, "NSAID") is None
    assert interaction_from_classes("Antidiabetic", "Antidiabetic") is None
    assert interaction_from_classes("Statin", "statin").severity == Severity.MODERATE
    assert interaction_from_classes("NSAID", "Anticoagulant").severity == Severity.HIGH
    assert interaction_from_classes("Antiplatelet", "Oral anticoagulant").severity == Severity.HIGH
    assert interaction_from_classes("Beta-blocker", "Diuretic") is None


@pytest.mark.anyio
async def test_deterministic_output():
    medicines = ["Warfarin", "ibuprofen", "naproxen", "lisinopril", "unknown"]
    first = [result.to_dict() for result in await check_interactions(medicines)]
    second = [result.to_dict() for result in await check_interactions(medicines)]
    assert first == second
