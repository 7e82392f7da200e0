"""
OpenFDA API Client

Client for FDA structured product labels (drug/label endpoint).
"""

import logging
import threading
from typing import Dict, List, Optional

from ddi_mining.api_clients.base_client import BaseAPIClient
from ddi_mining.exceptions import ParseError, TransportError

logger = logging.getLogger(__name__)


class OpenFDAClient(BaseAPIClient):
    """
    Client for OpenFDA API.

    Rate limits:
    - With API key: 240 requests/minute
    - Without API key: 40 requests/minute
    """

    BASE_URL = "https://api.fda.gov"

    def __init__(self, api_key: Optional[str] = None, rate_limit: Optional[int] = None, **kwargs):
        """
        Initialize OpenFDA client.

        Args:
            api_key: OpenFDA API key (optional but recommended)
            rate_limit: Override the key-dependent default
        """
        self.api_key = api_key

        if rate_limit is None:
            rate_limit = 240 if self.api_key else 40
        if not self.api_key:
            logger.warning(f"OpenFDA client initialized WITHOUT API key ({rate_limit} req/min)")

        super().__init__(base_url=self.BASE_URL, rate_limit=rate_limit, name="OpenFDA", **kwargs)

    def _add_api_key(self, params: Dict) -> Dict:
        """Add API key to request parameters if available."""
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    def search_drug_labels(
        self,
        drug_name: str,
        limit: int = 20,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Dict]:
        """
        Search drug labels by brand or generic name.

        Args:
            drug_name: Drug name (brand or generic)
            limit: Max labels to return
            cancel_event: Abort once set

        Returns:
            List of label documents (empty when openFDA reports no match)

        Raises:
            TransportError: If openFDA is unreachable
            ParseError: If the payload has no result list
        """
        clean_name = drug_name.strip().replace('"', '').replace("'", "")
        params = self._add_api_key({
            "search": f'(openfda.brand_name:"{clean_name}" OR openfda.generic_name:"{clean_name}")',
            "limit": min(limit, 100),
        })

        # openFDA answers 404 when the search matches nothing
        result = self.get("/drug/label.json", params=params, cancel_event=cancel_event, allow_not_found=True)
        if result is None:
            logger.debug(f"No labels found for '{drug_name}'")
            return []

        if not isinstance(result, dict) or not isinstance(result.get("results", []), list):
            raise ParseError(f"Unexpected openFDA payload for '{drug_name}'")

        labels = result.get("results", [])
        logger.info(f"Found {len(labels)} labels for '{drug_name}'")
        return labels

    def health_check(self) -> bool:
        """Check if OpenFDA API is accessible."""
        try:
            result = self.get("/drug/label.json", params=self._add_api_key({"limit": 1}))
            return isinstance(result, dict) and "results" in result
        except (TransportError, ParseError) as e:
            logger.error(f"OpenFDA health check failed: {e}")
            return False
