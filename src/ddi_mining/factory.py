"""
Factory Functions for DDI Mining

Builds a fully-wired orchestrator: one API client and extractor per evidence
source, the drug vocabulary and the shared services.
"""

import logging
from typing import Optional

from ddi_mining.api_clients import ClinicalTrialsClient, OpenFDAClient, PubMedClient
from ddi_mining.config import Config, get_config
from ddi_mining.extractors import ClinicalTrialsExtractor, PublicationExtractor, RegulatoryLabelExtractor
from ddi_mining.models import EvidenceSource
from ddi_mining.orchestrator import DDIMiningOrchestrator
from ddi_mining.parsers import InteractionTextParser
from ddi_mining.vocabulary import DrugVocabulary

logger = logging.getLogger(__name__)


def create_orchestrator(config: Optional[Config] = None) -> DDIMiningOrchestrator:
    """
    Create a DDIMiningOrchestrator with all dependencies.

    Args:
        config: Configuration (defaults to environment-derived config)

    Returns:
        Configured DDIMiningOrchestrator
    """
    config = config or get_config()
    api = config.api

    vocabulary = create_vocabulary(config)
    parser = InteractionTextParser(vocabulary.lexicon)

    client_options = {"timeout": api.request_timeout, "max_retries": api.max_retries}

    clinical_trials_client = ClinicalTrialsClient(rate_limit=api.clinicaltrials_rate_limit, **client_options)
    openfda_client = OpenFDAClient(api_key=api.openfda_api_key, rate_limit=api.openfda_rate_limit, **client_options)
    pubmed_client = PubMedClient(
        api_key=api.ncbi_api_key,
        email=api.ncbi_email,
        rate_limit=api.pubmed_rate_limit,
        **client_options,
    )

    extractors = {
        EvidenceSource.CLINICAL_TRIAL: ClinicalTrialsExtractor(clinical_trials_client, parser),
        EvidenceSource.REGULATORY: RegulatoryLabelExtractor(openfda_client, parser),
        EvidenceSource.PUBLICATION: PublicationExtractor(pubmed_client, parser),
    }
    logger.info(f"Created extractors for {len(extractors)} sources")

    return DDIMiningOrchestrator(extractors=extractors, config=config, vocabulary=vocabulary)


def create_vocabulary(config: Config) -> DrugVocabulary:
    """Curated vocabulary, or the CSV override when one is configured."""
    if config.vocabulary_csv:
        logger.info(f"Loading drug vocabulary from {config.vocabulary_csv}")
        return DrugVocabulary.from_csv(config.vocabulary_csv)
    return DrugVocabulary()
