"""
Rule catalog: condition/generator pairs that turn indicator readings into
recommendation drafts.

Each ``Rule`` is independent and is evaluated against the same reading set:

  - ``condition(readings) -> bool`` is pure and cheap.
  - ``generate(readings, partners) -> list[RecommendationDraft]`` is a
    coroutine because it looks up partner entities through ``PartnerLookup``.

A generator emits a draft only when the directory returns at least one
partner of the required type; the first (best-ranked) partner is attached.

The catalog is an immutable tuple built once by ``build_default_catalog()``
and passed into the evaluator. Catalog order is the order drafts come out in
for a single analysis; ranking reorders them later.

Rules
-----
vitamin_d_deficiency   : vitamin D low       -> LABORATORY retest + SUPPLEMENT D3
low_hemoglobin         : hemoglobin low      -> CLINIC hematologist + PHARMACY iron
high_cholesterol       : cholesterol high    -> CLINIC cardiologist + CLINIC nutritionist
multiple_abnormalities : >= N abnormal values -> CLINIC comprehensive workup
high_glucose           : glucose high        -> CLINIC endocrinologist
low_ferritin           : ferritin low        -> PHARMACY iron
elevated_liver_enzymes : ALT or AST high     -> CLINIC hepatologist
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, Optional

from selfcare_recommender.models.indicator import IndicatorReading
from selfcare_recommender.models.recommendation import RecommendationDraft
from selfcare_recommender.recommendations.interfaces import PartnerLookup
from selfcare_recommender.recommendations.matcher import IndicatorMatcher
from selfcare_recommender.taxonomy.indicator_taxonomy import CanonicalIndicator
from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    PartnerType,
    Priority,
    RecommendationType,
)

Condition = Callable[[list[IndicatorReading]], bool]
DraftGenerator = Callable[[list[IndicatorReading], PartnerLookup], Awaitable[list[RecommendationDraft]]]

Direction = Literal["below", "above"]

IRON_SUPPLEMENT_TITLE = "Препараты железа"


@dataclass(frozen=True)
class Rule:
    """One entry of the rule catalog.

    Attributes:
        name:      Stable identifier used in logs and ``GenerationError``.
        order:     Position in the catalog (ascending).
        condition: Pure predicate over the analysis readings.
        generate:  Coroutine producing drafts for a matching analysis.
    """

    name:      str
    order:     int
    condition: Condition
    generate:  DraftGenerator


def find_flagged(
    readings:  list[IndicatorReading],
    matcher:   IndicatorMatcher,
    category:  CanonicalIndicator,
    direction: Direction,
) -> Optional[IndicatorReading]:
    """Return the first reading of ``category`` flagged abnormal and out of range.

    ``direction="below"`` requires ``value < reference_min``; ``"above"``
    requires ``value > reference_max``. An unknown bound never matches.
    """
    for reading in readings:
        if reading.is_normal or matcher.classify(reading.name) != category:
            continue
        if direction == "below" and reading.is_below_range:
            return reading
        if direction == "above" and reading.is_above_range:
            return reading
    return None


def _describe(reading: IndicatorReading) -> str:
    unit = f" {reading.unit}" if reading.unit else ""
    return f"{reading.value:g}{unit}"


def _describe_range(reading: IndicatorReading) -> str:
    unit = f" {reading.unit}" if reading.unit else ""
    return f"{reading.range_label}{unit}"


def _value_metadata(reading: IndicatorReading, **extra: object) -> dict[str, object]:
    return {
        **extra,
        "indicator": reading.name,
        "currentValue": reading.value,
        "normalRange": reading.range_label,
        "unit": reading.unit,
    }


def build_default_catalog(
    matcher: IndicatorMatcher,
    multiple_abnormal_threshold: int = 3,
    partner_limit: int = 3,
) -> tuple[Rule, ...]:
    """Build the standard rule catalog.

    Args:
        matcher:                     Classifies free-text indicator names.
        multiple_abnormal_threshold: Abnormal readings needed for the workup rule.
        partner_limit:               ``limit`` passed to every partner lookup.

    Returns:
        Rules in catalog order.
    """

    async def first_partner(partners: PartnerLookup, partner_type: PartnerType) -> Optional[int]:
        found = await partners.find_partners(partner_type, active_only=True, limit=partner_limit)
        return found[0].partner_id if found else None

    def flagged(category: CanonicalIndicator, direction: Direction) -> Condition:
        return lambda readings: find_flagged(readings, matcher, category, direction) is not None

    def trigger(readings: list[IndicatorReading], category: CanonicalIndicator, direction: Direction) -> IndicatorReading:
        reading = find_flagged(readings, matcher, category, direction)
        if reading is None:
            raise ValueError(f"no {direction}-range {category} reading to act on")
        return reading

    # ── Vitamin D ─────────────────────────────────────────────────────────────

    async def vitamin_d_deficiency(
        readings: list[IndicatorReading], partners: PartnerLookup
    ) -> list[RecommendationDraft]:
        vit_d = trigger(readings, CanonicalIndicator.VITAMIN_D, "below")
        drafts: list[RecommendationDraft] = []

        lab_id = await first_partner(partners, PartnerType.LABORATORY)
        if lab_id is not None:
            drafts.append(RecommendationDraft(
                type=RecommendationType.LABORATORY,
                title="Повторный анализ на витамин D",
                description=(
                    "Рекомендуется повторный анализ на витамин D через 2-3 месяца. "
                    f"Текущий уровень: {_describe(vit_d)} (норма: {_describe_range(vit_d)})"
                ),
                reason=f"Низкий уровень витамина D ({_describe(vit_d)})",
                priority=Priority.HIGH,
                partner_entity_id=lab_id,
                metadata=_value_metadata(vit_d, testType="vitamin_d"),
            ))

        store_id = await first_partner(partners, PartnerType.HEALTH_STORE)
        if store_id is not None:
            drafts.append(RecommendationDraft(
                type=RecommendationType.SUPPLEMENT,
                title="Витамин D3 - биодобавка",
                description=(
                    "Рекомендуется прием витамина D3 в дозировке 1000-2000 МЕ в день "
                    "для коррекции дефицита"
                ),
                reason=f"Дефицит витамина D ({_describe(vit_d)})",
                priority=Priority.HIGH,
                partner_entity_id=store_id,
                metadata={
                    "supplementType": "vitamin_d3",
                    "dosage": "1000-2000 МЕ",
                    "duration": "2-3 месяца",
                },
            ))
        return drafts

    # ── Hemoglobin ────────────────────────────────────────────────────────────

    async def low_hemoglobin(
        readings: list[IndicatorReading], partners: PartnerLookup
    ) -> list[RecommendationDraft]:
        hb = trigger(readings, CanonicalIndicator.HEMOGLOBIN, "below")
        drafts: list[RecommendationDraft] = []

        clinic_id = await first_partner(partners, PartnerType.CLINIC)
        if clinic_id is not None:
            drafts.append(RecommendationDraft(
                type=RecommendationType.CLINIC,
                title="Консультация гематолога",
                description=(
                    f"Низкий уровень гемоглобина ({_describe(hb)}) требует консультации "
                    "специалиста для выявления причины анемии"
                ),
                reason=f"Низкий гемоглобин ({_describe(hb)})",
                priority=Priority.HIGH,
                partner_entity_id=clinic_id,
                metadata=_value_metadata(hb, specialty="гематолог"),
            ))

        pharmacy_id = await first_partner(partners, PartnerType.PHARMACY)
        if pharmacy_id is not None:
            drafts.append(RecommendationDraft(
                type=RecommendationType.PHARMACY,
                title=IRON_SUPPLEMENT_TITLE,
                description=(
                    "Рекомендуется прием препаратов железа для коррекции анемии. "
                    "Проконсультируйтесь с врачом о дозировке"
                ),
                reason=f"Низкий гемоглобин ({_describe(hb)})",
                priority=Priority.MEDIUM,
                partner_entity_id=pharmacy_id,
                metadata={"supplementType": "iron", "note": "Требуется консультация врача"},
            ))
        return drafts

    # ── Cholesterol ───────────────────────────────────────────────────────────

    async def high_cholesterol(
        readings: list[IndicatorReading], partners: PartnerLookup
    ) -> list[RecommendationDraft]:
        chol = trigger(readings, CanonicalIndicator.CHOLESTEROL, "above")
        drafts: list[RecommendationDraft] = []

        clinic_id = await first_partner(partners, PartnerType.CLINIC)
        if clinic_id is not None:
            drafts.append(RecommendationDraft(
                type=RecommendationType.CLINIC,
                title="Консультация кардиолога",
                description=(
                    f"Повышенный уровень холестерина ({_describe(chol)}) требует консультации "
                    "кардиолога для оценки сердечно-сосудистого риска"
                ),
                reason=f"Повышенный холестерин ({_describe(chol)})",
                priority=Priority.MEDIUM,
                partner_entity_id=clinic_id,
                metadata=_value_metadata(chol, specialty="кардиолог"),
            ))

        nutritionist_id = await first_partner(partners, PartnerType.NUTRITIONIST)
        if nutritionist_id is not None:
            drafts.append(RecommendationDraft(
                type=RecommendationType.CLINIC,
                title="Консультация диетолога",
                description=(
                    "Рекомендуется консультация диетолога для составления плана питания, "
                    "направленного на снижение холестерина"
                ),
                reason=f"Повышенный холестерин ({_describe(chol)})",
                priority=Priority.LOW,
                partner_entity_id=nutritionist_id,
                metadata={"specialty": "диетолог", "goal": "снижение холестерина"},
            ))
        return drafts

    # ── Multiple abnormalities ────────────────────────────────────────────────

    def has_multiple_abnormal(readings: list[IndicatorReading]) -> bool:
        return sum(1 for r in readings if not r.is_normal) >= multiple_abnormal_threshold

    async def multiple_abnormalities(
        readings: list[IndicatorReading], partners: PartnerLookup
    ) -> list[RecommendationDraft]:
        abnormal = [r.name for r in readings if not r.is_normal]
        clinic_id = await first_partner(partners, PartnerType.CLINIC)
        if clinic_id is None:
            return []
        return [RecommendationDraft(
            type=RecommendationType.CLINIC,
            title="Комплексное медицинское обследование",
            description=(
                f"Обнаружено {len(abnormal)} отклонений в анализах. "
                "Рекомендуется комплексное обследование для выявления причин"
            ),
            reason=f"Множественные отклонения ({len(abnormal)} показателей)",
            priority=Priority.HIGH,
            partner_entity_id=clinic_id,
            metadata={"abnormalCount": len(abnormal), "abnormalIndicators": abnormal},
        )]

    # ── Glucose ───────────────────────────────────────────────────────────────

    async def high_glucose(
        readings: list[IndicatorReading], partners: PartnerLookup
    ) -> list[RecommendationDraft]:
        glucose = trigger(readings, CanonicalIndicator.GLUCOSE, "above")
        clinic_id = await first_partner(partners, PartnerType.CLINIC)
        if clinic_id is None:
            return []
        return [RecommendationDraft(
            type=RecommendationType.CLINIC,
            title="Консультация эндокринолога",
            description=(
                "Рекомендуется консультация эндокринолога для оценки состояния "
                "углеводного обмена и исключения сахарного диабета"
            ),
            reason=f"Повышенный уровень глюкозы ({_describe(glucose)})",
            priority=Priority.HIGH,
            partner_entity_id=clinic_id,
            metadata=_value_metadata(glucose, specialty="эндокринолог"),
        )]

    # ── Ferritin ──────────────────────────────────────────────────────────────

    async def low_ferritin(
        readings: list[IndicatorReading], partners: PartnerLookup
    ) -> list[RecommendationDraft]:
        ferritin = trigger(readings, CanonicalIndicator.FERRITIN, "below")
        pharmacy_id = await first_partner(partners, PartnerType.PHARMACY)
        if pharmacy_id is None:
            return []
        # Same title as the hemoglobin rule so both collapse into one draft.
        return [RecommendationDraft(
            type=RecommendationType.PHARMACY,
            title=IRON_SUPPLEMENT_TITLE,
            description=(
                "Низкий ферритин говорит об истощении запасов железа. "
                "Рекомендуется прием препаратов железа, дозировку согласуйте с врачом"
            ),
            reason=f"Низкий ферритин ({_describe(ferritin)})",
            priority=Priority.MEDIUM,
            partner_entity_id=pharmacy_id,
            metadata=_value_metadata(ferritin, supplementType="iron"),
        )]

    # ── Liver enzymes ─────────────────────────────────────────────────────────

    def has_elevated_liver_enzyme(readings: list[IndicatorReading]) -> bool:
        return any(
            find_flagged(readings, matcher, category, "above") is not None
            for category in (CanonicalIndicator.ALT, CanonicalIndicator.AST)
        )

    async def elevated_liver_enzymes(
        readings: list[IndicatorReading], partners: PartnerLookup
    ) -> list[RecommendationDraft]:
        elevated = [
            reading
            for category in (CanonicalIndicator.ALT, CanonicalIndicator.AST)
            if (reading := find_flagged(readings, matcher, category, "above")) is not None
        ]
        if not elevated:
            raise ValueError("no above-range ALT/AST reading to act on")
        clinic_id = await first_partner(partners, PartnerType.CLINIC)
        if clinic_id is None:
            return []
        summary = ", ".join(f"{r.name} {_describe(r)}" for r in elevated)
        return [RecommendationDraft(
            type=RecommendationType.CLINIC,
            title="Консультация гепатолога",
            description=(
                "Повышенные печеночные ферменты требуют консультации гепатолога "
                "для оценки состояния печени"
            ),
            reason=f"Повышенные печеночные ферменты ({summary})",
            priority=Priority.MEDIUM,
            partner_entity_id=clinic_id,
            metadata={
                "specialty": "гепатолог",
                "elevatedIndicators": [_value_metadata(r) for r in elevated],
            },
        )]

    return (
        Rule("vitamin_d_deficiency",   10, flagged(CanonicalIndicator.VITAMIN_D, "below"),   vitamin_d_deficiency),
        Rule("low_hemoglobin",         20, flagged(CanonicalIndicator.HEMOGLOBIN, "below"),  low_hemoglobin),
        Rule("high_cholesterol",       30, flagged(CanonicalIndicator.CHOLESTEROL, "above"), high_cholesterol),
        Rule("multiple_abnormalities", 40, has_multiple_abnormal,                            multiple_abnormalities),
        Rule("high_glucose",           50, flagged(CanonicalIndicator.GLUCOSE, "above"),     high_glucose),
        Rule("low_ferritin",           60, flagged(CanonicalIndicator.FERRITIN, "below"),    low_ferritin),
        Rule("elevated_liver_enzymes", 70, has_elevated_liver_enzyme,                        elevated_liver_enzymes),
    )
