"""
Interaction Text Parser - keyword and pattern heuristics over source text.

Shared by all three extractors: finds partner drug mentions, enzyme and
transporter pathways, mechanism tags, severity cues, effects and management
advice. No statistical NLP; every signal comes from a fixed pattern list.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ddi_mining.utils.pair_key import canonical_drug_name

logger = logging.getLogger(__name__)


DDI_KEYWORDS = [
    "concomitant", "concurrent", "co-administration", "coadministration",
    "drug interaction", "drug-drug interaction", "prohibited medication",
    "excluded medication", "cyp inhibitor", "cyp inducer", "strong inhibitor",
    "moderate inhibitor", "enzyme inhibitor", "enzyme inducer", "contraindicated",
    "avoid combination", "use with caution", "p-glycoprotein", "p-gp",
    "transporter", "increases exposure", "decreases exposure", "interaction",
]

ENZYME_PATTERNS = [
    (re.compile(r"\bCYP\s*-?\s*([1-3][A-Z][0-9]{1,2})\b", re.IGNORECASE), lambda m: f"CYP{m.group(1).upper()}"),
    (re.compile(r"\bP-?glycoprotein\b|\bP-?gp\b|\bMDR1\b|\bABCB1\b", re.IGNORECASE), lambda m: "P-gp"),
    (re.compile(r"\bOATP\s*([0-9][A-Z][0-9])\b", re.IGNORECASE), lambda m: f"OATP{m.group(1).upper()}"),
    (re.compile(r"\bUGT\s*([0-9][A-Z][0-9]{1,2})\b", re.IGNORECASE), lambda m: f"UGT{m.group(1).upper()}"),
    (re.compile(r"\bBCRP\b|\bABCG2\b", re.IGNORECASE), lambda m: "BCRP"),
]

MECHANISM_PATTERNS = {
    "enzyme_inhibition": [r"inhibit\w*\s+(?:of\s+)?(?:cyp|metabolism|cytochrome)", r"cyp\w*\s+inhibit",
                          r"(?:strong|moderate|weak|potent)\s+(?:cyp\w*\s+)?inhibitors?"],
    "enzyme_induction": [r"induc\w*\s+(?:of\s+)?(?:cyp|metabolism|cytochrome)", r"cyp\w*\s+induc",
                         r"(?:strong|moderate|weak)\s+(?:cyp\w*\s+)?inducers?"],
    "transporter_inhibition": [r"(?:p-?gp|p-?glycoprotein|oatp\w*|bcrp)\s+inhibit", r"inhibit\w*\s+(?:of\s+)?(?:p-?gp|oatp|bcrp)"],
    "protein_binding_displacement": [r"protein[- ]binding", r"displace\w*\s+from\s+(?:plasma\s+)?(?:protein|albumin)"],
    "absorption_interference": [r"absorption", r"gastric\s+ph", r"chelat\w*", r"acid[- ]reducing"],
    "renal_elimination": [r"renal\s+(?:clearance|elimination|excretion)", r"tubular\s+secretion"],
    "qt_prolongation": [r"qtc?\s+(?:interval\s+)?prolong", r"torsade"],
    "additive_toxicity": [r"additive\s+(?:toxicit|effect)", r"myelosuppress", r"cardiotoxic",
                          r"nephrotoxic", r"hepatotoxic", r"neurotoxic", r"bleeding"],
}

SEVERITY_INDICATORS = [
    ("contraindicated", ["contraindicated", "prohibited", "must not be", "not permitted", "forbidden"]),
    ("major", ["strong inhibitor", "potent inhibitor", "strong inducer", "avoid", "significant", "serious", "fatal", "life-threatening"]),
    ("moderate", ["moderate inhibitor", "caution", "monitor", "dose adjustment", "reduce the dose", "consider"]),
    ("minor", ["weak inhibitor", "minor", "minimal", "not clinically significant"]),
]

EFFECT_PATTERNS = [
    re.compile(r"\b(increase[sd]?|decrease[sd]?|reduce[sd]?|elevate[sd]?|lower(?:s|ed)?)\b[^.;]{0,80}?"
               r"\b(exposure|concentrations?|levels?|AUC|Cmax|clearance|half-life)\b[^.;]*", re.IGNORECASE),
    re.compile(r"\b(?:risk of|increased risk of|may cause|can cause|resulting in)\b[^.;]*", re.IGNORECASE),
    re.compile(r"\b(QTc? prolongation|myelosuppression|neutropenia|cardiotoxicity|nephrotoxicity|"
               r"hepatotoxicity|bleeding|serotonin syndrome)\b", re.IGNORECASE),
]

MANAGEMENT_PATTERN = re.compile(
    r"[^.;]*\b(avoid|reduce the dose|dose reduction|dose adjustment|adjust the dose|monitor|"
    r"consider (?:an )?alternative|discontinue|do not (?:co-?administer|use))\b[^.;]*",
    re.IGNORECASE,
)

# Generic-name stems typical of small molecules and biologics
DRUG_SUFFIX_PATTERN = re.compile(
    r"\b([a-z]{3,}(?:mycin|cillin|navir|tinib|ciclib|parib|mab|zole|conazole|pril|sartan|statin|"
    r"afenib|platin|rubicin|taxel|tecan|olol))\b",
    re.IGNORECASE,
)

COMMON_WORDS = {
    "and", "or", "but", "the", "with", "for", "use", "treatment", "therapy", "drug",
    "medication", "patient", "study", "trial", "group", "dose", "effect", "adverse",
    "clinical", "inhibitor", "inhibitors", "inducer", "inducers", "problem", "program",
}

SENTENCE_SPLIT = re.compile(r"\n\s*\n|(?<=[.;])\s+(?=[A-Z(])|\n\s*[-*•]\s*")


@dataclass
class InteractionSignal:
    """Heuristic reading of one text fragment."""
    partners: List[str] = field(default_factory=list)
    enzymes: List[str] = field(default_factory=list)
    mechanism_tags: List[str] = field(default_factory=list)
    severity: Optional[str] = None
    effect: Optional[str] = None
    management: Optional[str] = None


class InteractionTextParser:
    """Pattern-based interaction mining over free text."""

    def __init__(self, lexicon: Iterable[str] = ()):
        """
        Args:
            lexicon: Known drug names matched verbatim (word boundaries)
        """
        names = sorted({n.lower() for n in lexicon if n}, key=lambda n: (-len(n), n))
        self._lexicon_pattern = (
            re.compile(r"(?<![\w-])(" + "|".join(re.escape(n) for n in names) + r")(?![\w-])", re.IGNORECASE)
            if names else None
        )
        self._mechanisms = {
            tag: [re.compile(p, re.IGNORECASE) for p in patterns]
            for tag, patterns in MECHANISM_PATTERNS.items()
        }

    @staticmethod
    def mentions_interaction(text: str) -> bool:
        """True when the text contains any interaction keyword or pathway."""
        if not text:
            return False
        lower = text.lower()
        if any(keyword in lower for keyword in DDI_KEYWORDS):
            return True
        return any(pattern.search(text) for pattern, _ in ENZYME_PATTERNS)

    @staticmethod
    def split_sentences(text: str, min_length: int = 20) -> List[str]:
        """Split into sentence-like fragments, dropping short ones."""
        if not text:
            return []
        parts = [p.strip() for p in SENTENCE_SPLIT.split(text)]
        return [p for p in parts if len(p) > min_length]

    @staticmethod
    def split_criteria(text: str) -> Tuple[str, str]:
        """
        Split eligibility criteria into (inclusion, exclusion) sections.

        Text before any header counts as inclusion.
        """
        if not text:
            return "", ""
        match = re.search(r"exclusion\s+criteria\s*:?", text, re.IGNORECASE)
        if not match:
            return text, ""
        inclusion = re.sub(r"^\s*inclusion\s+criteria\s*:?", "", text[:match.start()], flags=re.IGNORECASE)
        return inclusion.strip(), text[match.end():].strip()

    @staticmethod
    def find_enzymes(text: str) -> List[str]:
        found = []
        for pattern, label in ENZYME_PATTERNS:
            for match in pattern.finditer(text or ""):
                name = label(match)
                if name not in found:
                    found.append(name)
        return found

    def find_mechanism_tags(self, text: str) -> List[str]:
        """Mechanism tags plus one lower-cased tag per enzyme/transporter."""
        tags = []
        for tag, patterns in self._mechanisms.items():
            if any(p.search(text or "") for p in patterns):
                tags.append(tag)
        tags.extend(enzyme.lower() for enzyme in self.find_enzymes(text))
        return sorted(set(tags))

    @staticmethod
    def detect_severity(text: str) -> Optional[str]:
        lower = (text or "").lower()
        for severity, indicators in SEVERITY_INDICATORS:
            if any(indicator in lower for indicator in indicators):
                return severity
        return None

    @staticmethod
    def extract_effect(text: str) -> Optional[str]:
        for pattern in EFFECT_PATTERNS:
            match = pattern.search(text or "")
            if match:
                return _clip(match.group(0))
        return None

    @staticmethod
    def extract_management(text: str) -> Optional[str]:
        match = MANAGEMENT_PATTERN.search(text or "")
        return _clip(match.group(0)) if match else None

    def find_drug_mentions(self, text: str, exclude: Optional[str] = None) -> List[str]:
        """
        Canonical partner drug names mentioned in the text.

        Lexicon matches come first, then names that only match a generic-name
        stem. ``exclude`` (the drug being mined) is never returned.
        """
        if not text:
            return []

        excluded = set()
        if exclude:
            try:
                excluded.add(canonical_drug_name(exclude))
            except ValueError:
                pass

        found = []

        def add(name: str):
            try:
                canonical = canonical_drug_name(name)
            except ValueError:
                return
            if canonical in excluded or canonical in COMMON_WORDS or canonical in found:
                return
            # Skip stems that are part of the excluded drug's own name
            if any(canonical in other or other in canonical for other in excluded):
                return
            found.append(canonical)

        if self._lexicon_pattern is not None:
            for match in self._lexicon_pattern.finditer(text):
                add(match.group(1))

        for match in DRUG_SUFFIX_PATTERN.finditer(text):
            word = match.group(1)
            if 4 <= len(word) <= 25:
                add(word)

        return found

    def analyze(self, text: str, primary_drug: str) -> InteractionSignal:
        """Run every heuristic over one fragment."""
        return InteractionSignal(
            partners=self.find_drug_mentions(text, exclude=primary_drug),
            enzymes=self.find_enzymes(text),
            mechanism_tags=self.find_mechanism_tags(text),
            severity=self.detect_severity(text),
            effect=self.extract_effect(text),
            management=self.extract_management(text),
        )


def _clip(text: str, limit: int = 240) -> str:
    text = re.sub(r"\s+", " ", text).strip(" ,;:")
    return text if len(text) <= limit else text[:limit - 3].rstrip() + "..."


def excerpt(text: str, limit: int = 500) -> str:
    """Whitespace-collapsed excerpt bounded to ``limit`` characters."""
    return _clip(text or "", limit)
