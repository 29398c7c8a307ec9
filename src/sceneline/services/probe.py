"""Asset reachability probing over HTTP."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import requests

from ..config import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing one locator."""

    url: str
    ok: bool
    status_code: Optional[int] = None
    reason: str = ""


class UrlProber:
    """Checks that asset locators can be fetched.

    Probes run concurrently with a bounded worker pool; every request carries
    a timeout, and a timeout counts as unreachable.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self._timeout = timeout if timeout is not None else config.probe_timeout_sec
        self._max_workers = max_workers if max_workers is not None else config.probe_max_workers

    def probe(self, url: str) -> ProbeResult:
        """Probe one locator with HEAD, falling back to GET when HEAD is refused."""
        try:
            response = requests.head(url, timeout=self._timeout, allow_redirects=True)
            if response.status_code in (405, 501):
                response = requests.get(url, timeout=self._timeout, stream=True)
                response.close()
        except requests.Timeout:
            return ProbeResult(url=url, ok=False, reason="timeout")
        except requests.RequestException as e:
            return ProbeResult(url=url, ok=False, reason=f"request failed: {e}")

        if response.status_code >= 400:
            return ProbeResult(
                url=url,
                ok=False,
                status_code=response.status_code,
                reason=f"HTTP {response.status_code}",
            )
        return ProbeResult(url=url, ok=True, status_code=response.status_code)

    def probe_all(self, urls: Iterable[str]) -> Dict[str, ProbeResult]:
        """Probe distinct locators concurrently.

        Args:
            urls: Locators to probe; duplicates are probed once.

        Returns:
            Mapping from locator to its probe result.
        """
        unique = sorted(set(urls))
        results: Dict[str, ProbeResult] = {}
        if not unique:
            return results

        workers = min(self._max_workers, len(unique))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_url = {executor.submit(self.probe, url): url for url in unique}
            for future in as_completed(future_to_url):
                url = future_to_url[future]
                result = future.result()
                if not result.ok:
                    logger.warning(f"Unreachable asset {url}: {result.reason}")
                results[url] = result
        return results
