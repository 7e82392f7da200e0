"""
PubMed API Client

Wrapper for the NCBI E-utilities endpoints used for publication evidence:
esearch (JSON) to find PMIDs and efetch (XML) to pull abstracts.

Documentation: https://www.ncbi.nlm.nih.gov/books/NBK25501/
"""

import logging
import threading
from typing import List, Optional
from xml.etree import ElementTree as ET

from ddi_mining.api_clients.base_client import BaseAPIClient
from ddi_mining.exceptions import ParseError, TransportError

logger = logging.getLogger(__name__)


class PubMedClient(BaseAPIClient):
    """
    Client for NCBI PubMed E-utilities.

    Rate limit: 3 req/sec without key, 10 req/sec with key
    """

    BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
    TOOL_NAME = "ddi-mining"

    def __init__(
        self,
        api_key: Optional[str] = None,
        email: Optional[str] = None,
        rate_limit: Optional[int] = None,
        **kwargs
    ):
        """
        Args:
            api_key: NCBI API key (for higher rate limits)
            email: Contact address sent with each request
            rate_limit: Requests per minute, derived from the key when omitted
        """
        self.api_key = api_key
        self.email = email
        if rate_limit is None:
            rate_limit = 600 if api_key else 180
        super().__init__(base_url=self.BASE_URL, rate_limit=rate_limit, name="PubMed", **kwargs)

    def _base_params(self) -> dict:
        params = {"db": "pubmed", "tool": self.TOOL_NAME}
        if self.email:
            params["email"] = self.email
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    def search(
        self,
        query: str,
        max_results: int = 100,
        sort: str = "relevance",
        cancel_event: Optional[threading.Event] = None,
    ) -> List[str]:
        """
        Search PubMed and return PMIDs.

        Raises:
            TransportError: If E-utilities is unreachable
            ParseError: If the response has no esearch result
        """
        params = self._base_params()
        params.update({
            "term": query,
            "retmax": max_results,
            "retmode": "json",
            "sort": sort,
        })

        data = self.get("/esearch.fcgi", params=params, cancel_event=cancel_event)

        result = data.get("esearchresult") if isinstance(data, dict) else None
        if not isinstance(result, dict):
            raise ParseError("PubMed esearch response missing 'esearchresult'")

        pmids = [str(pmid) for pmid in result.get("idlist", [])]
        logger.info(f"Found {len(pmids)} articles for query: {query}")
        return pmids

    def fetch_articles(
        self,
        pmids: List[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[ET.Element]:
        """
        Fetch PubmedArticle elements for the given PMIDs in one efetch call.

        Raises:
            TransportError: If E-utilities is unreachable
            ParseError: If the XML cannot be parsed
        """
        if not pmids:
            return []

        params = self._base_params()
        params.update({
            "id": ",".join(pmids),
            "retmode": "xml",
            "rettype": "abstract",
        })

        xml_text = self.get("/efetch.fcgi", params=params, cancel_event=cancel_event, parse_json=False)

        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise ParseError(f"PubMed efetch returned malformed XML: {e}") from e

        articles = root.findall(".//PubmedArticle")
        logger.info(f"Retrieved {len(articles)} article abstracts")
        return articles

    def health_check(self) -> bool:
        """Check if E-utilities is accessible."""
        try:
            self.search("drug interactions", max_results=1)
            return True
        except (TransportError, ParseError) as e:
            logger.error(f"PubMed health check failed: {e}")
            return False
