"""
Drug Vocabulary

Curated oncology drug list mined by ``mine_all_known_drugs``, the indication
fallback map, and the lexicon of common interaction partners used when
scanning source text for drug mentions.
"""

import csv
import logging
from typing import Dict, Iterable, List, Optional, Protocol

from ddi_mining.utils.pair_key import canonical_drug_name

logger = logging.getLogger(__name__)


ONCOLOGY_DRUGS = [
    # Cytotoxics
    "doxorubicin", "cyclophosphamide", "methotrexate", "cisplatin", "carboplatin",
    "paclitaxel", "docetaxel", "gemcitabine", "irinotecan", "oxaliplatin",
    "temozolomide", "lomustine", "carmustine", "dacarbazine", "procarbazine",
    "hydroxyurea", "mercaptopurine", "thioguanine", "fluorouracil", "capecitabine",
    "cytarabine", "azacitidine", "decitabine", "cladribine", "fludarabine",
    "pentostatin", "nelarabine", "clofarabine", "bendamustine", "melphalan",
    "chlorambucil", "ifosfamide", "mitomycin", "bleomycin", "dactinomycin",
    "daunorubicin", "epirubicin", "idarubicin", "mitoxantrone", "streptozocin",
    "topotecan", "etoposide", "teniposide", "vincristine", "vinblastine",
    "vinorelbine", "cabazitaxel", "ixabepilone", "eribulin",
    # Antibodies and conjugates
    "bevacizumab", "trastuzumab", "pertuzumab", "rituximab", "cetuximab",
    "pembrolizumab", "nivolumab", "atezolizumab", "durvalumab", "ipilimumab",
    "avelumab", "cemiplimab", "dostarlimab", "sacituzumab govitecan",
    "trastuzumab deruxtecan", "brentuximab vedotin", "polatuzumab vedotin",
    "enfortumab vedotin", "inotuzumab ozogamicin", "gemtuzumab ozogamicin",
    # Kinase, PARP and BCL-2 inhibitors
    "erlotinib", "gefitinib", "osimertinib", "imatinib", "dasatinib", "nilotinib",
    "sorafenib", "sunitinib", "pazopanib", "regorafenib", "cabozantinib",
    "lenvatinib", "ibrutinib", "acalabrutinib", "zanubrutinib", "idelalisib",
    "ruxolitinib", "fedratinib", "olaparib", "rucaparib", "niraparib",
    "talazoparib", "venetoclax", "palbociclib", "ribociclib", "abemaciclib",
    # Hormonal
    "tamoxifen", "letrozole", "anastrozole", "exemestane", "abiraterone",
    "enzalutamide",
]

# Perpetrators and victims frequently named in interaction text
INTERACTING_DRUGS = [
    "ketoconazole", "itraconazole", "voriconazole", "posaconazole", "fluconazole",
    "clarithromycin", "erythromycin", "ritonavir", "cobicistat", "diltiazem",
    "verapamil", "rifampin", "rifampicin", "rifabutin", "carbamazepine",
    "phenytoin", "phenobarbital", "st. john's wort", "warfarin", "digoxin",
    "cyclosporine", "tacrolimus", "simvastatin", "atorvastatin", "omeprazole",
    "pantoprazole", "esomeprazole", "dexamethasone", "prednisone", "midazolam",
    "fluoxetine", "paroxetine", "bupropion", "quinidine", "amiodarone",
    "ondansetron", "methadone", "allopurinol", "leucovorin", "trimethoprim",
    "probenecid", "nsaids", "aspirin", "ibuprofen", "grapefruit juice",
]

INDICATION_DRUGS: Dict[str, List[str]] = {
    "breast cancer": ["doxorubicin", "cyclophosphamide", "paclitaxel", "trastuzumab", "pertuzumab"],
    "lung cancer": ["cisplatin", "carboplatin", "paclitaxel", "gemcitabine", "erlotinib"],
    "colorectal cancer": ["fluorouracil", "oxaliplatin", "irinotecan", "bevacizumab", "cetuximab"],
    "leukemia": ["methotrexate", "cytarabine", "daunorubicin", "imatinib", "dasatinib"],
    "lymphoma": ["rituximab", "cyclophosphamide", "doxorubicin", "vincristine", "prednisone"],
}


class IndicationResolver(Protocol):
    """Maps indication names onto drug names."""

    def resolve(self, indications: List[str]) -> List[str]:
        ...


def _dedupe(names: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for name in names:
        try:
            canonical = canonical_drug_name(name)
        except ValueError:
            continue
        if canonical not in seen:
            seen.add(canonical)
            result.append(canonical)
    return result


class DrugVocabulary:
    """Known drug names plus the indication fallback map."""

    def __init__(
        self,
        drugs: Optional[List[str]] = None,
        indication_map: Optional[Dict[str, List[str]]] = None,
    ):
        self._drugs = _dedupe(drugs if drugs is not None else ONCOLOGY_DRUGS)
        self._indication_map = {
            k.lower(): _dedupe(v) for k, v in (indication_map or INDICATION_DRUGS).items()
        }
        self._lexicon = set(self._drugs) | set(_dedupe(INTERACTING_DRUGS))
        for drug_list in self._indication_map.values():
            self._lexicon.update(drug_list)

    @classmethod
    def from_csv(cls, csv_path: str) -> "DrugVocabulary":
        """
        Load the drug list from a CSV with a ``drug_name`` or ``name`` column.

        Raises:
            ValueError: If no usable column is present
        """
        drugs = []
        with open(csv_path, 'r', encoding='utf-8') as f:
            reader = csv.DictReader(f)
            fieldnames = [name.lower().strip() for name in (reader.fieldnames or [])]
            column = next((c for c in ("drug_name", "name", "generic_name") if c in fieldnames), None)
            if column is None:
                raise ValueError(f"CSV must have a 'drug_name' or 'name' column: {csv_path}")
            original = reader.fieldnames[fieldnames.index(column)]
            for row in reader:
                name = (row.get(original) or "").strip()
                if name:
                    drugs.append(name)

        logger.info(f"Loaded {len(drugs)} drugs from {csv_path}")
        return cls(drugs=drugs)

    @property
    def drugs(self) -> List[str]:
        return list(self._drugs)

    @property
    def lexicon(self) -> List[str]:
        """Every known drug name, longest first for greedy matching."""
        return sorted(self._lexicon, key=lambda n: (-len(n), n))

    def is_known(self, name: str) -> bool:
        try:
            return canonical_drug_name(name) in self._lexicon
        except ValueError:
            return False

    def resolve(self, indications: List[str]) -> List[str]:
        """Drugs for indications; an indication matches when it contains a mapped term."""
        drugs = []
        for indication in indications:
            indication_lower = (indication or "").lower()
            for key, drug_list in self._indication_map.items():
                if key in indication_lower:
                    drugs.extend(drug_list)
        return _dedupe(drugs)
