"""
Pydantic schemas used to validate evidence arriving from outside the pipeline
(e.g. an exported file being re-checked).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ddi_mining.models import EvidenceLevel, EvidenceSource, Severity
from ddi_mining.utils.pair_key import DrugPairKey


class CitationSchema(BaseModel):
    """Provenance pointer"""
    type: EvidenceSource = Field(..., description="Source type the citation points into")
    id: str = Field(..., min_length=1, description="Source identifier (NCT ID, label set ID, PMID)")
    url: Optional[str] = Field(None, description="Link to the source record")


class NormalizedEvidenceSchema(BaseModel):
    """Canonical interaction record"""
    model_config = ConfigDict(extra="ignore")

    drug_pair_key: str = Field(..., description="Order-independent pair key, e.g. 'doxorubicin__trastuzumab'")
    drug_a: str = Field(..., min_length=1)
    drug_b: str = Field(..., min_length=1)
    severity: Severity = Field(..., description="minor | moderate | major")
    evidence_level: EvidenceLevel = Field(..., description="A | B | C")
    source_citations: List[CitationSchema] = Field(..., min_length=1, description="At least one citation")
    effect: str = Field("", description="Clinical effect of the interaction")
    management: str = Field("", description="Recommended handling")
    mechanism_tags: List[str] = Field(default_factory=list)
    first_seen_at: datetime
    last_updated_at: datetime
    merged_from_count: int = Field(1, ge=1)

    @field_validator("drug_pair_key")
    @classmethod
    def check_pair_key(cls, value: str) -> str:
        if not DrugPairKey.validate(value):
            raise ValueError(f"malformed drug pair key: {value!r}")
        return value

    @model_validator(mode="after")
    def check_pair_matches_drugs(self) -> "NormalizedEvidenceSchema":
        try:
            expected = DrugPairKey.generate(self.drug_a, self.drug_b)
        except ValueError as e:
            raise ValueError(f"drug_pair_key: {e}") from e
        if expected != self.drug_pair_key:
            raise ValueError(f"drug_pair_key: {self.drug_pair_key!r} does not match drugs ({expected!r})")
        return self
