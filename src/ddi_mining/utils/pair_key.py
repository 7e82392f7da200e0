"""
Drug Pair Key

Generates order-independent keys identifying an interacting drug pair.

Format: {first}__{second} with both names canonicalized and sorted
Example: doxorubicin__trastuzumab
"""

import re
from typing import Tuple


SEPARATOR = "__"

# Common oncology abbreviations seen in trial and label text
DRUG_ABBREVIATIONS = {
    "5-fu": "fluorouracil",
    "5fu": "fluorouracil",
    "5-fluorouracil": "fluorouracil",
    "ctx": "cyclophosphamide",
    "mtx": "methotrexate",
    "cddp": "cisplatin",
    "ara-c": "cytarabine",
    "adr": "doxorubicin",
    "6-mp": "mercaptopurine",
}

# Dosage forms and salt suffixes stripped from names
_DOSAGE_FORM_PATTERN = re.compile(
    r"\s+(tablets?|capsules?|injection|injectable|oral|solution|suspension|"
    r"hydrochloride|hcl|sodium|sulfate|mesylate|citrate|acetate)\b.*$"
)


def canonical_drug_name(name: str) -> str:
    """
    Canonicalize a drug name for keying.

    Rules:
    - Lower-case and trim
    - Collapse internal whitespace
    - Strip dosage-form suffixes
    - Expand known abbreviations

    Raises:
        ValueError: If the name is empty after canonicalization
    """
    if name is None:
        raise ValueError("Drug name is required")

    normalized = re.sub(r"\s+", " ", str(name).strip().lower())
    normalized = _DOSAGE_FORM_PATTERN.sub("", normalized).strip()
    normalized = DRUG_ABBREVIATIONS.get(normalized, normalized)

    if not normalized:
        raise ValueError(f"Cannot canonicalize empty drug name: {name!r}")

    return normalized


class DrugPairKey:
    """Generate and validate order-independent drug pair keys."""

    @classmethod
    def generate(cls, drug_a: str, drug_b: str) -> str:
        """
        Generate the pair key for two drugs.

        Examples:
            >>> DrugPairKey.generate("Trastuzumab", " doxorubicin ")
            'doxorubicin__trastuzumab'

        Raises:
            ValueError: If either name is empty or both name the same drug
        """
        first, second = cls.ordered(drug_a, drug_b)
        return f"{first}{SEPARATOR}{second}"

    @classmethod
    def ordered(cls, drug_a: str, drug_b: str) -> Tuple[str, str]:
        """Return the canonical names of a pair in key order."""
        first = canonical_drug_name(drug_a)
        second = canonical_drug_name(drug_b)
        if first == second:
            raise ValueError(f"A drug cannot interact with itself: {first!r}")
        return tuple(sorted((first, second)))

    @classmethod
    def split(cls, pair_key: str) -> Tuple[str, str]:
        """Split a pair key into its two drug names."""
        if not cls.validate(pair_key):
            raise ValueError(f"Malformed drug pair key: {pair_key!r}")
        first, second = pair_key.split(SEPARATOR)
        return first, second

    @classmethod
    def validate(cls, pair_key: str) -> bool:
        """
        Check that a key is well-formed.

        A valid key has exactly two distinct, canonical, sorted components.
        """
        if not isinstance(pair_key, str):
            return False

        parts = pair_key.split(SEPARATOR)
        if len(parts) != 2:
            return False

        first, second = parts
        try:
            if canonical_drug_name(first) != first or canonical_drug_name(second) != second:
                return False
        except ValueError:
            return False

        return first < second
