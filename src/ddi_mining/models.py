"""
Data models for DDI evidence mining.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class EvidenceSource(str, Enum):
    """Knowledge sources evidence is mined from."""
    CLINICAL_TRIAL = "clinical_trial"
    REGULATORY = "regulatory"
    PUBLICATION = "publication"


# Default precedence used to break evidence-level ties (first wins)
DEFAULT_SOURCE_PRECEDENCE = (
    EvidenceSource.REGULATORY,
    EvidenceSource.CLINICAL_TRIAL,
    EvidenceSource.PUBLICATION,
)


class Severity(str, Enum):
    """Clinical severity of an interaction."""
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


class EvidenceLevel(str, Enum):
    """Strength of evidence, A (strongest) to C (weakest)."""
    A = "A"
    B = "B"
    C = "C"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_SEVERITY_RANK = {Severity.MINOR: 1, Severity.MODERATE: 2, Severity.MAJOR: 3}
_LEVEL_RANK = {EvidenceLevel.C: 1, EvidenceLevel.B: 2, EvidenceLevel.A: 3}


class JobStatus(str, Enum):
    """Lifecycle of a mining job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.PARTIAL, JobStatus.FAILED)


class DrugStatus(str, Enum):
    """Outcome of mining a single drug across its sources."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"   # every enabled source succeeded
    PARTIAL = "partial"       # some sources failed
    FAILED = "failed"         # no source succeeded


@dataclass
class RawEvidenceEntry:
    """Single finding produced by one extractor before normalization."""
    source: EvidenceSource
    drug_a: str
    drug_b: str
    source_id: str
    excerpt: str = ""
    extracted_at: datetime = field(default_factory=datetime.now)
    confidence_hint: float = 50.0

    # Hints parsed from the source text
    severity: Optional[str] = None
    evidence_level: Optional[str] = None
    effect: Optional[str] = None
    management: Optional[str] = None
    mechanism_tags: List[str] = field(default_factory=list)
    url: Optional[str] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class Citation:
    """Provenance pointer into a source."""
    type: EvidenceSource
    id: str
    url: Optional[str] = None

    @property
    def key(self):
        return (self.type, self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "id": self.id, "url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Citation":
        return cls(type=EvidenceSource(data["type"]), id=str(data["id"]), url=data.get("url"))


@dataclass
class NormalizedEvidence:
    """Canonical, deduplicated interaction record for one drug pair."""
    drug_pair_key: str
    drug_a: str
    drug_b: str
    severity: Severity
    evidence_level: EvidenceLevel
    source_citations: List[Citation] = field(default_factory=list)
    effect: str = ""
    management: str = ""
    mechanism_tags: List[str] = field(default_factory=list)
    first_seen_at: datetime = field(default_factory=datetime.now)
    last_updated_at: datetime = field(default_factory=datetime.now)
    merged_from_count: int = 1

    @property
    def source_types(self) -> List[EvidenceSource]:
        """Distinct source types backing this record."""
        seen = []
        for citation in self.source_citations:
            if citation.type not in seen:
                seen.append(citation.type)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "drug_pair_key": self.drug_pair_key,
            "drug_a": self.drug_a,
            "drug_b": self.drug_b,
            "severity": self.severity.value,
            "effect": self.effect,
            "management": self.management,
            "evidence_level": self.evidence_level.value,
            "source_citations": [c.to_dict() for c in self.source_citations],
            "mechanism_tags": list(self.mechanism_tags),
            "first_seen_at": self.first_seen_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
            "merged_from_count": self.merged_from_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedEvidence":
        return cls(
            drug_pair_key=data["drug_pair_key"],
            drug_a=data["drug_a"],
            drug_b=data["drug_b"],
            severity=Severity(data["severity"]),
            evidence_level=EvidenceLevel(data["evidence_level"]),
            source_citations=[Citation.from_dict(c) for c in data.get("source_citations", [])],
            effect=data.get("effect") or "",
            management=data.get("management") or "",
            mechanism_tags=list(data.get("mechanism_tags", [])),
            first_seen_at=datetime.fromisoformat(data["first_seen_at"]),
            last_updated_at=datetime.fromisoformat(data["last_updated_at"]),
            merged_from_count=int(data.get("merged_from_count", 1)),
        )


@dataclass
class DrugResult:
    """Per-drug outcome within a job."""
    drug_name: str
    status: DrugStatus = DrugStatus.PENDING
    evidence_count: int = 0
    source_counts: Dict[str, int] = field(default_factory=dict)
    source_errors: Dict[str, str] = field(default_factory=dict)
    cache_hits: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0


@dataclass
class MiningJob:
    """One orchestrator invocation over one or more drugs."""
    job_id: str
    drugs: List[str]
    status: JobStatus = JobStatus.PENDING
    drug_results: Dict[str, DrugResult] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    @property
    def processed_count(self) -> int:
        return sum(
            1 for r in self.drug_results.values()
            if r.status in (DrugStatus.COMPLETED, DrugStatus.PARTIAL, DrugStatus.FAILED)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "drugs": list(self.drugs),
            "status": self.status.value,
            "drug_status": {name: r.status.value for name, r in self.drug_results.items()},
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "errors": list(self.errors),
        }


@dataclass
class JobAcknowledgment:
    """Immediate response for a job started in the background."""
    job_id: str
    drug_count: int
    status: str = "accepted"
    message: str = ""
