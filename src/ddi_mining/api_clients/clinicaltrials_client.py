"""
ClinicalTrials.gov API Client (v2)

Searches interventional studies for a drug; study records are returned with
their full protocol section so no per-study detail call is needed.
"""

import logging
import threading
from typing import Dict, List, Optional

from ddi_mining.api_clients.base_client import BaseAPIClient
from ddi_mining.exceptions import ParseError, TransportError

logger = logging.getLogger(__name__)


ACTIVE_STATUSES = ["RECRUITING", "ACTIVE_NOT_RECRUITING"]


class ClinicalTrialsClient(BaseAPIClient):
    """
    Client for ClinicalTrials.gov v2 API.

    Free API with no authentication required.
    Rate limit: ~50 requests/minute (conservative estimate)
    """

    BASE_URL = "https://clinicaltrials.gov/api/v2"
    MAX_PAGE_SIZE = 100

    def __init__(self, rate_limit: int = 50, **kwargs):
        super().__init__(base_url=self.BASE_URL, rate_limit=rate_limit, name="ClinicalTrials", **kwargs)

    def search_trials(
        self,
        drug_name: str,
        include_completed: bool = True,
        limit: int = 50,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Dict]:
        """
        Search interventional trials by intervention name.

        Args:
            drug_name: Drug/intervention name to search
            include_completed: Also return COMPLETED studies
            limit: Max studies to return (pages are followed until reached)
            cancel_event: Stop paging once set

        Returns:
            List of raw study records (empty when nothing matches)

        Raises:
            TransportError: If the registry is unreachable
            ParseError: If the payload is not a study listing
        """
        statuses = ACTIVE_STATUSES + (["COMPLETED"] if include_completed else [])
        studies: List[Dict] = []
        page_token = None

        while len(studies) < limit:
            params = {
                "query.intr": drug_name,
                "filter.overallStatus": ",".join(statuses),
                "filter.advanced": "AREA[StudyType]INTERVENTIONAL",
                "pageSize": min(limit - len(studies), self.MAX_PAGE_SIZE),
                "format": "json",
            }
            if page_token:
                params["pageToken"] = page_token

            result = self.get("/studies", params=params, cancel_event=cancel_event)

            if not isinstance(result, dict):
                raise ParseError(f"Unexpected ClinicalTrials.gov payload for '{drug_name}'")

            page = result.get("studies", [])
            if not isinstance(page, list):
                raise ParseError(f"'studies' is not a list for '{drug_name}'")

            studies.extend(page)
            page_token = result.get("nextPageToken")
            if not page or not page_token:
                break

        logger.info(f"Found {len(studies)} trials for '{drug_name}'")
        return studies[:limit]

    def health_check(self) -> bool:
        """Check if ClinicalTrials.gov API is accessible."""
        try:
            result = self.get("/studies", params={"query.intr": "aspirin", "pageSize": 1, "format": "json"})
            return isinstance(result, dict) and "studies" in result
        except (TransportError, ParseError) as e:
            logger.error(f"ClinicalTrials.gov health check failed: {e}")
            return False
