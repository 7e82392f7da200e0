"""
API Clients module for DDI mining.

Provides rate-limited clients for the three evidence sources.
"""

from ddi_mining.api_clients.base_client import BaseAPIClient
from ddi_mining.api_clients.clinicaltrials_client import ClinicalTrialsClient
from ddi_mining.api_clients.openfda_client import OpenFDAClient
from ddi_mining.api_clients.pubmed_client import PubMedClient

__all__ = [
    "BaseAPIClient",
    "ClinicalTrialsClient",
    "OpenFDAClient",
    "PubMedClient",
]
