"""
Evidence Normalization Service

Turns raw extractor output into canonical, deduplicated interaction records:

1. Standardize each raw entry (drug names, severity, evidence level, tags).
   Entries that cannot be standardized are quarantined with a reason code.
2. Group by order-independent drug pair key.
3. Merge each group: highest evidence level wins (source precedence breaks
   ties), highest severity wins, citations and mechanism tags are unioned.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError as SchemaValidationError

from ddi_mining.exceptions import ValidationError
from ddi_mining.models import (
    DEFAULT_SOURCE_PRECEDENCE,
    Citation,
    EvidenceLevel,
    EvidenceSource,
    NormalizedEvidence,
    RawEvidenceEntry,
    Severity,
)
from ddi_mining.schemas import NormalizedEvidenceSchema
from ddi_mining.utils.pair_key import SEPARATOR, canonical_drug_name

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    """Why an entry was quarantined."""
    MISSING_FIELD = "MISSING_FIELD"
    MISSING_CITATION = "MISSING_CITATION"
    MALFORMED_PAIR_KEY = "MALFORMED_PAIR_KEY"
    SELF_INTERACTION = "SELF_INTERACTION"
    INVALID_SOURCE = "INVALID_SOURCE"
    INVALID_SEVERITY = "INVALID_SEVERITY"
    INVALID_EVIDENCE_LEVEL = "INVALID_EVIDENCE_LEVEL"
    SCHEMA_ERROR = "SCHEMA_ERROR"


SEVERITY_MAP = {
    Severity.MAJOR: ["contraindicated", "avoid", "major", "high", "severe", "serious", "significant"],
    Severity.MODERATE: ["moderate", "moderately", "medium", "caution", "monitor"],
    Severity.MINOR: [
        "minor", "low", "mild", "minimal", "negligible", "insignificant",
        "not significant", "not clinically significant",
    ],
}

# Whole-word patterns, longest phrase first
SEVERITY_PHRASES = [
    (re.compile(rf"\b{re.escape(variant)}\b"), severity)
    for variant, severity in sorted(
        ((v, s) for s, variants in SEVERITY_MAP.items() for v in variants),
        key=lambda pair: -len(pair[0]),
    )
]

EVIDENCE_LEVEL_MAP = {
    EvidenceLevel.A: ["a", "high", "1", "strong"],
    EvidenceLevel.B: ["b", "medium", "moderate", "2"],
    EvidenceLevel.C: ["c", "low", "3", "weak"],
}

TAG_ALIASES = {
    "pgp": "p-gp",
    "p-glycoprotein": "p-gp",
    "p_glycoprotein": "p-gp",
    "mdr1": "p-gp",
    "abcb1": "p-gp",
    "abcg2": "bcrp",
}

MAX_EFFECTS = 5


@dataclass
class QuarantinedEntry:
    """Entry that failed standardization or validation."""
    entry: Any
    reason_code: RejectionReason
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"reason_code": self.reason_code.value, "detail": self.detail}


@dataclass
class NormalizationReport:
    """Counts for one or more normalization passes."""
    entries_in: int = 0
    entries_out: int = 0
    rejected: int = 0
    merged: int = 0
    rejection_reasons: Dict[str, int] = field(default_factory=dict)
    severity_distribution: Dict[str, int] = field(default_factory=dict)
    evidence_level_distribution: Dict[str, int] = field(default_factory=dict)
    source_distribution: Dict[str, int] = field(default_factory=dict)

    def absorb(self, other: "NormalizationReport"):
        """Accumulate another report into this one."""
        self.entries_in += other.entries_in
        self.entries_out += other.entries_out
        self.rejected += other.rejected
        self.merged += other.merged
        for attr in ("rejection_reasons", "severity_distribution",
                     "evidence_level_distribution", "source_distribution"):
            totals = Counter(getattr(self, attr))
            totals.update(getattr(other, attr))
            setattr(self, attr, dict(totals))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries_in": self.entries_in,
            "entries_out": self.entries_out,
            "rejected": self.rejected,
            "merged": self.merged,
            "rejection_reasons": dict(self.rejection_reasons),
            "severity_distribution": dict(self.severity_distribution),
            "evidence_level_distribution": dict(self.evidence_level_distribution),
            "source_distribution": dict(self.source_distribution),
        }


@dataclass
class NormalizationResult:
    records: List[NormalizedEvidence]
    report: NormalizationReport
    rejected: List[QuarantinedEntry] = field(default_factory=list)


@dataclass
class ValidationResult:
    valid: List[Any] = field(default_factory=list)
    invalid: List[QuarantinedEntry] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def validation_rate(self) -> float:
        total = len(self.valid) + len(self.invalid)
        return len(self.valid) / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid_count": len(self.valid),
            "invalid_count": len(self.invalid),
            "validation_rate": round(self.validation_rate, 3),
            "invalid": [q.to_dict() for q in self.invalid],
            "warnings": list(self.warnings),
        }


def standardize_severity(value: Any) -> Severity:
    """Map free-form severity wording onto minor/moderate/major; unknown is moderate."""
    if isinstance(value, Severity):
        return value
    lower = str(value or "").strip().lower()
    if not lower:
        return Severity.MODERATE
    for severity, variants in SEVERITY_MAP.items():
        if lower in variants:
            return severity
    for pattern, severity in SEVERITY_PHRASES:
        if pattern.search(lower):
            return severity
    raise ValidationError(RejectionReason.INVALID_SEVERITY.value, f"Unrecognized severity: {value!r}")


def standardize_evidence_level(value: Any) -> EvidenceLevel:
    """Map A/B/C or high/medium/low onto EvidenceLevel; missing is C."""
    if isinstance(value, EvidenceLevel):
        return value
    lower = str(value or "").strip().lower()
    if not lower:
        return EvidenceLevel.C
    for level, variants in EVIDENCE_LEVEL_MAP.items():
        if lower in variants:
            return level
    raise ValidationError(RejectionReason.INVALID_EVIDENCE_LEVEL.value, f"Unrecognized evidence level: {value!r}")


def standardize_tags(tags: Iterable[str]) -> List[str]:
    result = set()
    for tag in tags or []:
        cleaned = "_".join(str(tag).strip().lower().split())
        cleaned = cleaned.replace("cyp_", "cyp")
        if cleaned:
            result.add(TAG_ALIASES.get(cleaned, cleaned))
    return sorted(result)


class NormalizationService:
    """Standardize, group and merge interaction evidence."""

    def __init__(self, source_precedence: Sequence[EvidenceSource] = DEFAULT_SOURCE_PRECEDENCE):
        self.source_precedence = source_precedence

    @property
    def source_precedence(self) -> List[EvidenceSource]:
        return list(self._precedence)

    @source_precedence.setter
    def source_precedence(self, value: Sequence[EvidenceSource]):
        precedence = [EvidenceSource(s) for s in value]
        if sorted(s.value for s in precedence) != sorted(s.value for s in EvidenceSource):
            raise ValueError("source_precedence must list each source exactly once")
        self._precedence = precedence

    def _source_rank(self, source: EvidenceSource) -> int:
        """Higher is preferred."""
        return len(self._precedence) - self._precedence.index(source)

    def _preference(self, record: NormalizedEvidence):
        best_source = max((self._source_rank(c.type) for c in record.source_citations), default=0)
        return record.evidence_level.rank, best_source

    def normalize(self, raw_entries: Iterable[RawEvidenceEntry]) -> NormalizationResult:
        """
        Normalize raw entries into one record per drug pair.

        Returns:
            NormalizationResult with merged records, a report and the
            quarantined entries
        """
        report = NormalizationReport()
        rejected: List[QuarantinedEntry] = []
        groups: Dict[str, List[NormalizedEvidence]] = {}

        for entry in raw_entries:
            report.entries_in += 1
            try:
                record = self._standardize(entry)
            except ValidationError as e:
                reason = RejectionReason(e.reason_code)
                rejected.append(QuarantinedEntry(entry=entry, reason_code=reason, detail=str(e)))
                report.rejection_reasons[reason.value] = report.rejection_reasons.get(reason.value, 0) + 1
                logger.debug(f"Quarantined raw entry ({reason.value}): {e}")
                continue
            groups.setdefault(record.drug_pair_key, []).append(record)

        records = [self._merge_group(group) for group in groups.values()]

        report.rejected = len(rejected)
        report.entries_out = len(records)
        report.merged = report.entries_in - report.rejected - report.entries_out
        self._fill_distributions(report, records)

        if rejected:
            logger.warning(f"Normalization quarantined {len(rejected)} of {report.entries_in} entries")
        logger.debug(
            f"Normalized {report.entries_in} entries into {report.entries_out} records "
            f"({report.merged} merged, {report.rejected} rejected)"
        )
        return NormalizationResult(records=records, report=report, rejected=rejected)

    def merge_records(self, records: Iterable[NormalizedEvidence]) -> List[NormalizedEvidence]:
        """Merge already-normalized records that share a pair key."""
        groups: Dict[str, List[NormalizedEvidence]] = {}
        for record in records:
            groups.setdefault(record.drug_pair_key, []).append(record)
        return [
            group[0] if len(group) == 1 else self._merge_group(group, distinct_citations=True)
            for group in groups.values()
        ]

    def _standardize(self, entry: RawEvidenceEntry) -> NormalizedEvidence:
        """
        Standardize one raw entry into a single-source record.

        Raises:
            ValidationError: With a RejectionReason code
        """
        if not isinstance(entry, RawEvidenceEntry):
            raise ValidationError(RejectionReason.SCHEMA_ERROR.value, f"Not a raw entry: {type(entry).__name__}")

        try:
            source = EvidenceSource(entry.source)
        except ValueError:
            raise ValidationError(RejectionReason.INVALID_SOURCE.value, f"Unknown source: {entry.source!r}")

        if not entry.source_id:
            raise ValidationError(RejectionReason.MISSING_CITATION.value, "Raw entry has no source_id")

        try:
            name_a = canonical_drug_name(entry.drug_a)
            name_b = canonical_drug_name(entry.drug_b)
        except ValueError as e:
            raise ValidationError(RejectionReason.MISSING_FIELD.value, str(e))

        if name_a == name_b:
            raise ValidationError(RejectionReason.SELF_INTERACTION.value, f"Same drug on both sides: {name_a}")

        first, second = sorted((name_a, name_b))

        return NormalizedEvidence(
            drug_pair_key=f"{first}{SEPARATOR}{second}",
            drug_a=first,
            drug_b=second,
            severity=standardize_severity(entry.severity),
            evidence_level=standardize_evidence_level(entry.evidence_level),
            source_citations=[Citation(type=source, id=str(entry.source_id), url=entry.url)],
            effect=(entry.effect or "").strip(),
            management=(entry.management or "").strip(),
            mechanism_tags=standardize_tags(entry.mechanism_tags),
            first_seen_at=entry.extracted_at,
            last_updated_at=entry.extracted_at,
            merged_from_count=1,
        )

    def _merge_group(self, group: List[NormalizedEvidence], distinct_citations: bool = False) -> NormalizedEvidence:
        """
        Fold records sharing a pair key into one.

        With distinct_citations, a record only adds as many contributions as it
        brings citations not already present, so the same label or article
        found while mining both drugs of a pair is counted once.
        """
        primary = max(group, key=self._preference)
        ordered = [primary] + [r for r in group if r is not primary]

        effects: List[str] = []
        for record in ordered:
            effect = record.effect.strip()
            if effect and effect.lower() not in (e.lower() for e in effects):
                effects.append(effect)

        management = primary.management or next((r.management for r in ordered if r.management), "")

        citations: Dict[Any, Citation] = {}
        for record in ordered:
            for citation in record.source_citations:
                existing = citations.get(citation.key)
                if existing is None or (existing.url is None and citation.url):
                    citations[citation.key] = citation

        return NormalizedEvidence(
            drug_pair_key=primary.drug_pair_key,
            drug_a=primary.drug_a,
            drug_b=primary.drug_b,
            severity=max((r.severity for r in group), key=lambda s: s.rank),
            evidence_level=primary.evidence_level,
            source_citations=sorted(
                citations.values(),
                key=lambda c: (-self._source_rank(c.type), c.id),
            ),
            effect="; ".join(effects[:MAX_EFFECTS]),
            management=management,
            mechanism_tags=sorted({tag for r in group for tag in r.mechanism_tags}),
            first_seen_at=min(r.first_seen_at for r in group),
            last_updated_at=max(r.last_updated_at for r in group),
            merged_from_count=self._contributions(ordered, distinct_citations),
        )

    @staticmethod
    def _contributions(records: List[NormalizedEvidence], distinct_citations: bool) -> int:
        if not distinct_citations:
            return sum(r.merged_from_count for r in records)
        seen = set()
        total = 0
        for record in records:
            new_keys = {c.key for c in record.source_citations} - seen
            total += min(record.merged_from_count, len(new_keys))
            seen |= new_keys
        return total

    @staticmethod
    def _fill_distributions(report: NormalizationReport, records: List[NormalizedEvidence]):
        report.severity_distribution = dict(Counter(r.severity.value for r in records))
        report.evidence_level_distribution = dict(Counter(r.evidence_level.value for r in records))
        report.source_distribution = dict(Counter(s.value for r in records for s in r.source_types))

    def validate(self, entries: Iterable[Any]) -> ValidationResult:
        """
        Check records against the canonical schema.

        Accepts NormalizedEvidence objects or their dict form. Invalid entries
        are quarantined with a reason code; nothing is raised.
        """
        result = ValidationResult()

        for index, entry in enumerate(entries):
            if isinstance(entry, NormalizedEvidence):
                data = entry.to_dict()
            elif isinstance(entry, dict):
                data = entry
            else:
                result.invalid.append(QuarantinedEntry(
                    entry=entry,
                    reason_code=RejectionReason.SCHEMA_ERROR,
                    detail=f"Unsupported entry type: {type(entry).__name__}",
                ))
                continue

            try:
                parsed = NormalizedEvidenceSchema.model_validate(data)
            except SchemaValidationError as e:
                reason, detail = self._reason_from_errors(e.errors())
                result.invalid.append(QuarantinedEntry(entry=entry, reason_code=reason, detail=detail))
                continue

            result.valid.append(entry)

            label = parsed.drug_pair_key
            if not parsed.mechanism_tags:
                result.warnings.append(f"[{index}] {label}: no mechanism tags")
            if not parsed.effect:
                result.warnings.append(f"[{index}] {label}: effect not described")
            if len(parsed.source_citations) > parsed.merged_from_count:
                result.warnings.append(
                    f"[{index}] {label}: {len(parsed.source_citations)} citations but "
                    f"merged_from_count is {parsed.merged_from_count}"
                )

        logger.info(f"Validated {len(result.valid)} valid, {len(result.invalid)} invalid evidence entries")
        return result

    @staticmethod
    def _reason_from_errors(errors: List[Dict[str, Any]]):
        """Pick a RejectionReason for the first schema error."""
        for error in errors:
            loc = error.get("loc") or ()
            field_name = str(loc[0]) if loc else ""
            message = error.get("msg", "")
            detail = f"{'.'.join(str(p) for p in loc) or 'record'}: {message}"

            if field_name == "source_citations":
                if len(loc) > 2 and loc[2] == "type":
                    return RejectionReason.INVALID_SOURCE, detail
                return RejectionReason.MISSING_CITATION, detail
            if field_name == "drug_pair_key" or (not field_name and "drug_pair_key" in message):
                if error.get("type") == "missing":
                    return RejectionReason.MISSING_FIELD, detail
                return RejectionReason.MALFORMED_PAIR_KEY, detail
            if error.get("type") == "missing":
                return RejectionReason.MISSING_FIELD, detail
            if field_name == "severity":
                return RejectionReason.INVALID_SEVERITY, detail
            if field_name == "evidence_level":
                return RejectionReason.INVALID_EVIDENCE_LEVEL, detail

        first = errors[0] if errors else {}
        return RejectionReason.SCHEMA_ERROR, first.get("msg", "schema validation failed")
