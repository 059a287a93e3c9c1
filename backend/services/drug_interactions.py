"""Pairwise drug interaction resolver.

Each unordered pair of medicine names is resolved through, in order:
the static interaction table (both key orders), drug-category rules, and a
best-effort therapeutic-class lookup against the reference store.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from types import MappingProxyType
from typing import Awaitable, Callable, Mapping, Optional, Sequence

from services.errors import UpstreamError, ValidationError

logger = logging.getLogger("medassist.interactions")

MIN_MEDICINES = 2
MAX_MEDICINES = 20
MAX_NAME_LENGTH = 100


class Severity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


@dataclass(frozen=True)
class DrugInteraction:
    severity: Severity
    description: str
    recommendation: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


@dataclass(frozen=True)
class InteractionResult:
    drug1: str
    drug2: str
    interaction: Optional[DrugInteraction]

    def to_dict(self) -> dict:
        return {
            "drug1": self.drug1,
            "drug2": self.drug2,
            "interaction": self.interaction.to_dict() if self.interaction else None,
        }


# Stored once per pair under an arbitrary key order; look up both orders.
INTERACTION_TABLE: Mapping[str, Mapping[str, DrugInteraction]] = MappingProxyType({
    "warfarin": MappingProxyType({
        "aspirin": DrugInteraction(
            Severity.HIGH,
            "Increased risk of bleeding when taken together. Both drugs affect blood clotting.",
            "Consult your doctor immediately. Regular blood monitoring required.",
        ),
        "ibuprofen": DrugInteraction(
            Severity.HIGH,
            "NSAIDs can increase bleeding risk when combined with warfarin.",
            "Avoid combination. Use acetaminophen instead for pain relief.",
        ),
        "acetaminophen": DrugInteraction(
            Severity.LOW,
            "Generally safe combination but high doses of acetaminophen may enhance warfarin effect.",
            "Monitor INR levels if using high doses of acetaminophen.",
        ),
    }),
    "aspirin": MappingProxyType({
        "ibuprofen": DrugInteraction(
            Severity.MODERATE,
            "Both are NSAIDs and may increase risk of stomach bleeding and kidney problems.",
            "Take with food and avoid prolonged combined use. Space doses apart.",
        ),
        "clopidogrel": DrugInteraction(
            Severity.MODERATE,
            "Increased bleeding risk when antiplatelet agents are combined.",
            "Use only under medical supervision with regular monitoring.",
        ),
    }),
    "metformin": MappingProxyType({
        "alcohol": DrugInteraction(
            Severity.MODERATE,
            "Alcohol can increase risk of lactic acidosis with metformin.",
            "Limit alcohol consumption. Avoid binge drinking.",
        ),
    }),
    "lisinopril": MappingProxyType({
        "potassium": DrugInteraction(
            Severity.MODERATE,
            "ACE inhibitors can increase potassium levels, leading to hyperkalemia.",
            "Monitor potassium levels regularly. Avoid potassium supplements unless prescribed.",
        ),
        "ibuprofen": DrugInteraction(
            Severity.MODERATE,
            "NSAIDs can reduce effectiveness of ACE inhibitors and increase kidney damage risk.",
            "Use acetaminophen instead. Monitor blood pressure and kidney function.",
        ),
    }),
    "digoxin": MappingProxyType({
        "amiodarone": DrugInteraction(
            Severity.HIGH,
            "Amiodarone significantly increases digoxin levels, leading to toxicity.",
            "Reduce digoxin dose by 50% when starting amiodarone. Monitor digoxin levels closely.",
        ),
        "verapamil": DrugInteraction(
            Severity.MODERATE,
            "Calcium channel blockers can increase digoxin levels.",
            "Monitor digoxin levels and adjust dose as needed.",
        ),
    }),
    "simvastatin": MappingProxyType({
        "amlodipine": DrugInteraction(
            Severity.MODERATE,
            "Amlodipine can increase simvastatin levels, increasing risk of muscle problems.",
            "Limit simvastatin dose to 20mg daily when used with amlodipine.",
        ),
        "clarithromycin": DrugInteraction(
            Severity.HIGH,
            "Macrolide antibiotics significantly increase statin levels, causing muscle damage.",
            "Temporarily stop simvastatin during clarithromycin treatment.",
        ),
    }),
})

DRUG_CATEGORIES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "nsaids": (
        "ibuprofen", "naproxen", "diclofenac", "aspirin", "celecoxib",
        "indomethacin", "ketorolac", "meloxicam",
    ),
    "blood_thinners": (
        "warfarin", "heparin", "clopidogrel", "apixaban", "rivaroxaban",
        "dabigatran", "enoxaparin",
    ),
    "ace_inhibitors": ("lisinopril", "enalapril", "ramipril", "captopril", "perindopril"),
    "antacids": (
        "calcium carbonate", "magnesium hydroxide", "aluminium hydroxide",
        "aluminum hydroxide", "sodium bicarbonate", "antacid",
    ),
    "antibiotics": (
        "ciprofloxacin", "levofloxacin", "tetracycline", "doxycycline",
        "azithromycin", "amoxicillin",
    ),
    "antihistamines": (
        "cetirizine", "loratadine", "diphenhydramine", "chlorpheniramine",
        "fexofenadine", "promethazine",
    ),
    "beta_blockers": ("metoprolol", "atenolol", "propranolol", "carvedilol", "bisoprolol"),
    "diuretics": ("furosemide", "hydrochlorothiazide", "spironolactone", "torsemide"),
})


@dataclass(frozen=True)
class CategoryRule:
    first: str
    second: str
    distinct_names: bool
    interaction: DrugInteraction

    def matches(self, name_a: str, cat_a: str, name_b: str, cat_b: str) -> bool:
        if self.distinct_names and name_a == name_b:
            return False
        return (cat_a, cat_b) in ((self.first, self.second), (self.second, self.first))


# Order matters: the first matching rule wins. No rule exists for other
# category pairs (e.g. beta_blockers x diuretics).
CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule("nsaids", "nsaids", True, DrugInteraction(
        Severity.HIGH,
        "Taking multiple NSAIDs together increases the risk of stomach bleeding, ulcers and kidney damage.",
        "Avoid combining NSAIDs. Use only one pain reliever at a time and consult your doctor.",
    )),
    CategoryRule("nsaids", "blood_thinners", False, DrugInteraction(
        Severity.HIGH,
        "NSAIDs combined with blood thinners significantly increase bleeding risk.",
        "Avoid this combination. Ask your doctor about safer pain relief such as acetaminophen.",
    )),
    CategoryRule("blood_thinners", "blood_thinners", True, DrugInteraction(
        Severity.HIGH,
        "Combining blood thinners can cause dangerous, potentially life-threatening bleeding.",
        "Do not combine unless directed by your doctor. Close monitoring is required.",
    )),
    CategoryRule("ace_inhibitors", "nsaids", False, DrugInteraction(
        Severity.MODERATE,
        "NSAIDs can reduce the effectiveness of ACE inhibitors and increase the risk of kidney damage.",
        "Monitor blood pressure and kidney function. Prefer acetaminophen for pain relief.",
    )),
    CategoryRule("antacids", "antibiotics", False, DrugInteraction(
        Severity.MODERATE,
        "Antacids can bind to certain antibiotics and reduce their absorption.",
        "Take the antibiotic at least 2 hours before or 4-6 hours after the antacid.",
    )),
    CategoryRule("antihistamines", "antihistamines", True, DrugInteraction(
        Severity.MODERATE,
        "Combining antihistamines can cause excessive drowsiness and sedation.",
        "Avoid driving or operating machinery. Use only one antihistamine unless advised otherwise.",
    )),
)

INTERACTION_PRONE_CLASSES = (
    "anticoagulant",
    "nsaid",
    "beta-blocker",
    "diuretic",
    "statin",
    "antidepressant",
)

BLEEDING_RISK_CLASS_PAIRS = (
    ("anticoagulant", "nsaid"),
    ("anticoagulant", "antiplatelet"),
)

BLEEDING_RISK_INTERACTION = DrugInteraction(
    Severity.HIGH,
    "Combination of anticoagulants with NSAIDs or antiplatelet agents increases bleeding risk.",
    "Avoid this combination. Consult your doctor for safer alternatives.",
)

ClassLookup = Callable[[str], Awaitable[Optional[str]]]


def validate_medicines(medicines: Sequence) -> None:
    errors: list[dict] = []
    if not isinstance(medicines, (list, tuple)):
        raise ValidationError([{"loc": ["medicines"], "msg": "medicines must be a list of strings"}])
    if not MIN_MEDICINES <= len(medicines) <= MAX_MEDICINES:
        errors.append({
            "loc": ["medicines"],
            "msg": f"Provide between {MIN_MEDICINES} and {MAX_MEDICINES} medicines",
        })
    for index, name in enumerate(medicines):
        if not isinstance(name, str):
            errors.append({"loc": ["medicines", index], "msg": "Medicine name must be a string"})
            continue
        trimmed = name.strip()
        if not trimmed:
            errors.append({"loc": ["medicines", index], "msg": "Medicine name cannot be empty"})
        elif len(trimmed) > MAX_NAME_LENGTH:
            errors.append({
                "loc": ["medicines", index],
                "msg": f"Medicine name must be at most {MAX_NAME_LENGTH} characters",
            })
    if errors:
        raise ValidationError(errors)


def normalize_name(name: str) -> str:
    return name.strip().lower()


def lookup_static(drug_a: str, drug_b: str) -> Optional[DrugInteraction]:
    found = INTERACTION_TABLE.get(drug_a, {}).get(drug_b)
    if found is None:
        found = INTERACTION_TABLE.get(drug_b, {}).get(drug_a)
    return found


def categories_for(drug: str) -> list[str]:
    """Categories whose member list contains the name, or is contained by it."""
    return [
        category
        for category, members in DRUG_CATEGORIES.items()
        if any(member in drug or drug in member for member in members)
    ]


def lookup_category(drug_a: str, drug_b: str) -> Optional[DrugInteraction]:
    cats_a = categories_for(drug_a)
    cats_b = categories_for(drug_b)
    if not cats_a or not cats_b:
        return None
    for rule in CATEGORY_RULES:
        for cat_a in cats_a:
            for cat_b in cats_b:
                if rule.matches(drug_a, cat_a, drug_b, cat_b):
                    return rule.interaction
    return None


def resolve_locally(drug_a: str, drug_b: str) -> Optional[DrugInteraction]:
    """Static table then category rules. Both names must already be normalized."""
    return lookup_static(drug_a, drug_b) or lookup_category(drug_a, drug_b)


def interaction_from_classes(class_a: Optional[str], class_b: Optional[str]) -> Optional[DrugInteraction]:
    if not class_a or not class_b:
        return None
    class_a = class_a.lower()
    class_b = class_b.lower()

    if class_a == class_b and any(marker in class_a for marker in INTERACTION_PRONE_CLASSES):
        return DrugInteraction(
            Severity.MODERATE,
            f"Both medicines belong to the same therapeutic class ({class_a}). This may lead to additive effects.",
            "Consult your healthcare provider about potential dose adjustments.",
        )

    for first, second in BLEEDING_RISK_CLASS_PAIRS:
        if (first in class_a and second in class_b) or (second in class_a and first in class_b):
            return BLEEDING_RISK_INTERACTION
    return None


async def _safe_class_lookup(lookup: ClassLookup, drug: str) -> tuple[bool, Optional[str]]:
    try:
        return True, await lookup(drug)
    except UpstreamError as exc:
        logger.warning("Reference lookup failed for %r: %s", drug, exc)
        return False, None


async def check_interactions(
    medicines: Sequence[str],
    class_lookup: ClassLookup | None = None,
) -> list[InteractionResult]:
    """Resolve every i<j pair of ``medicines`` in input order.

    ``class_lookup`` returns the therapeutic class for a normalized name and is
    consulted only for pairs the static and category layers leave unresolved.
    Lookups run concurrently; each distinct name is queried once. A lookup that
    raises ``UpstreamError`` leaves the affected pairs without an interaction.
    """
    validate_medicines(medicines)
    normalized = [normalize_name(name) for name in medicines]

    pairs: list[tuple[int, int]] = [
        (i, j)
        for i in range(len(normalized))
        for j in range(i + 1, len(normalized))
    ]
    verdicts: dict[tuple[int, int], Optional[DrugInteraction]] = {
        (i, j): resolve_locally(normalized[i], normalized[j]) for i, j in pairs
    }

    unresolved = [pair for pair in pairs if verdicts[pair] is None]
    if unresolved and class_lookup is not None:
        names = sorted({normalized[i] for pair in unresolved for i in pair})
        outcomes = await asyncio.gather(*(_safe_class_lookup(class_lookup, name) for name in names))
        classes = dict(zip(names, outcomes))
        for i, j in unresolved:
            ok_a, class_a = classes[normalized[i]]
            ok_b, class_b = classes[normalized[j]]
            if ok_a and ok_b:
                verdicts[(i, j)] = interaction_from_classes(class_a, class_b)

    return [
        InteractionResult(drug1=medicines[i], drug2=medicines[j], interaction=verdicts[(i, j)])
        for i, j in pairs
    ]
