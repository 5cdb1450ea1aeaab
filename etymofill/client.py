"""Client for the LLM proxy that produces etymology analyses."""

from typing import Any, Dict, Optional

import requests

from .logger import get_logger
from .retry import AnalysisError, RateLimitedError, is_rate_limit_message, should_retry_http_status

logger = get_logger()

ETYMOLOGY_ENDPOINT = "/api/etymology"


class AnalysisClient:
    """
    Blocking HTTP client for the analysis service.

    Every call is bounded by ``timeout``. Throttling responses raise
    RateLimitedError, every other failure raises AnalysisError.
    """

    def __init__(self, base_url: str, timeout: float = 120.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def analyze(self, word: str, language: str) -> Dict[str, Any]:
        """
        Request the etymology analysis for a word.

        Args:
            word: The word to analyze
            language: Language display name (e.g. "Korean")

        Returns:
            Decoded JSON analysis payload

        Raises:
            RateLimitedError: If the proxy is throttling requests
            AnalysisError: On any other HTTP, network or decoding failure
        """
        url = self.base_url + ETYMOLOGY_ENDPOINT
        logger.record_analyze_call()
        try:
            resp = self.session.post(
                url,
                json={"word": word, "language": language},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise AnalysisError(f"LLM proxy request timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise AnalysisError(f"LLM proxy request error: {e}")

        if resp.status_code != 200:
            message = f"LLM proxy returned status {resp.status_code}: {resp.text}"
            if should_retry_http_status(resp.status_code) or is_rate_limit_message(resp.text):
                logger.record_rate_limited()
                raise RateLimitedError(message, status_code=resp.status_code)
            raise AnalysisError(message, status_code=resp.status_code)

        try:
            payload = resp.json()
        except ValueError as e:
            raise AnalysisError(f"LLM proxy returned invalid JSON: {e}")
        if not isinstance(payload, dict):
            raise AnalysisError(f"LLM proxy returned {type(payload).__name__}, expected an object")
        return payload

    def close(self) -> None:
        self.session.close()
