"""
HTTP probing module for provider detection.
Issues single-attempt HEAD requests and classifies failures.
A failed probe is "no signal", never an exception for the caller.
"""

import time
import requests
from dataclasses import dataclass
from typing import Optional
from requests.structures import CaseInsensitiveDict

from probe.core import REQUEST_TIMEOUT, DEFAULT_USER_AGENT, MAX_REDIRECTS, logger


@dataclass(frozen=True)
class ProbeResponse:
    """
    Transient outcome of one HEAD probe.
    Headers are case-insensitive; body is never read.
    """
    url: str
    final_url: str
    status_code: int
    headers: CaseInsensitiveDict
    fetch_time_ms: int

    @property
    def location(self) -> Optional[str]:
        return self.headers.get("location") or None

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name)


def build_session(max_redirects: int = MAX_REDIRECTS) -> requests.Session:
    """Shared connection pool for probes, with a short redirect budget."""
    session = requests.Session()
    session.max_redirects = max_redirects
    return session


class HeadProber:
    """
    FLOW: Builds request headers -> Executes one HEAD with explicit timeout ->
    Aborts once the probe deadline passes, redirect hops included ->
    Returns ProbeResponse on any HTTP answer, or None on network failure.

    `http` is anything exposing a requests-compatible head(); a
    build_session() Session by default.
    """

    def __init__(self, http=None, timeout: float = REQUEST_TIMEOUT):
        self._owns_http = http is None
        self._http = http if http is not None else build_session()
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    def head(self, url: str, user_agent: str = DEFAULT_USER_AGENT,
             follow_redirects: bool = True) -> Optional[ProbeResponse]:
        start_time = time.time()
        try:
            r = self._http.head(
                url,
                headers={"User-Agent": user_agent},
                allow_redirects=follow_redirects,
                timeout=self._timeout,
                hooks={"response": self._deadline_hook(start_time + self._timeout)},
            )
        except requests.exceptions.Timeout:
            self._log_failure(url, "timeout", start_time)
            return None
        except requests.exceptions.ConnectionError:
            self._log_failure(url, "connection_error", start_time)
            return None
        except requests.exceptions.RequestException as e:
            self._log_failure(url, f"request_error ({e})", start_time)
            return None

        fetch_time_ms = int((time.time() - start_time) * 1000)
        final_url = r.url if isinstance(getattr(r, "url", None), str) else url
        return ProbeResponse(
            url=url,
            final_url=final_url,
            status_code=r.status_code,
            headers=CaseInsensitiveDict(r.headers or {}),
            fetch_time_ms=fetch_time_ms,
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    @staticmethod
    def _deadline_hook(deadline):
        # requests runs response hooks on every hop, so this bounds the whole redirect chain
        def check(response, *args, **kwargs):
            if time.time() > deadline:
                response.close()
                raise requests.exceptions.Timeout(f"probe deadline passed at {response.url}")
            return response
        return check

    @staticmethod
    def _log_failure(url, error_type, start_time):
        fetch_time_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"[PROBE] HEAD {url} failed: {error_type} after {fetch_time_ms}ms")
