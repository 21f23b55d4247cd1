import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Tuple

from probe.core import (
    CONFIDENCE_FLOOR,
    DEFAULT_USER_AGENT,
    DNS_MATCH_WEIGHT,
    HEADER_MAX_WEIGHT,
    MAX_PROBE_WORKERS,
    PATH_EXISTS_STATUSES,
    PATH_MAX_WEIGHT,
    QUICK_USER_AGENT,
    REQUEST_TIMEOUT,
    logger,
)
from probe.fetcher import HeadProber
from probe.url_utils import authority_of, host_of, normalize_target, origin_of, site_key
from detection.catalog import DEFAULT_CATALOG, ProviderCatalog
from detection.models import (
    DetectedProvider,
    DetectionMatch,
    DetectionMethod,
    DetectionRecord,
    DetectionResult,
)
from detection.recommendations import generate_recommendations
from detection.storage import DetectionResultStore

# One distinguishing header per well-known provider, checked in order
QUICK_SIGNATURES = (
    ("cf-ray", "cloudflare"),
    ("x-vercel-id", "vercel"),
    ("x-nf-request-id", "netlify"),
    ("x-amz-cf-id", "aws_cloudfront"),
    ("x-shopid", "shopify"),
    ("x-github-request-id", "github_pages"),
)

# Merge order of per-pass results; fixed so the audit trail is deterministic
PASS_ORDER = (DetectionMethod.HEADERS, DetectionMethod.DNS, DetectionMethod.PATHS)

PassOutcome = Tuple[Dict[str, float], List[DetectionMatch]]


def merge_scores(per_pass: List[Dict[str, float]]) -> Dict[str, float]:
    """
    Sum per-provider scores across passes and clamp to [0, 100].
    Rounded to two decimals so the result does not depend on summation order.
    """
    totals: Dict[str, float] = {}
    for scores in per_pass:
        for provider, score in scores.items():
            totals[provider] = totals.get(provider, 0.0) + score
    return {p: round(min(max(s, 0.0), 100.0), 2) for p, s in totals.items()}


class ProviderDetector:
    """
    Hosting provider detection.
    Runs header, DNS/redirect and path fingerprint passes independently,
    sums their per-provider scores, and ranks providers above the
    confidence floor.
    """

    def __init__(
        self,
        catalog: ProviderCatalog = DEFAULT_CATALOG,
        http=None,
        store: Optional[DetectionResultStore] = None,
        timeout: float = REQUEST_TIMEOUT,
        max_workers: int = MAX_PROBE_WORKERS,
    ):
        self.name = "detector"
        self._catalog = catalog
        self._prober = HeadProber(http=http, timeout=timeout)
        self._store = store
        self._max_workers = max(1, int(max_workers))
        self._persist_executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="Persist") if store is not None else None
        )
        catalog.validate()

    @property
    def catalog(self) -> ProviderCatalog:
        return self._catalog

    def detect_provider(
        self,
        domain: str,
        user_agent: str = DEFAULT_USER_AGENT,
        identity_context: Optional[str] = None,
    ) -> DetectionResult:
        """
        Detect the hosting provider of a domain.
        Never raises for network failures; an unreachable site yields an
        empty, well-formed result.
        """
        url = normalize_target(domain)
        user_agent = user_agent or DEFAULT_USER_AGENT
        start_time = time.time()

        self.log("info", f"[DETECTION] Starting provider detection for {url}", site=host_of(url))

        passes = {
            DetectionMethod.HEADERS: lambda: self._detect_via_headers(url, user_agent),
            DetectionMethod.DNS: lambda: self._detect_via_dns(url, user_agent),
            DetectionMethod.PATHS: lambda: self._detect_via_paths(url, user_agent),
        }
        outcomes: Dict[DetectionMethod, PassOutcome] = {}

        with ThreadPoolExecutor(max_workers=len(passes), thread_name_prefix="Pass") as executor:
            future_to_method = {executor.submit(fn): method for method, fn in passes.items()}
            for future in as_completed(future_to_method):
                method = future_to_method[future]
                try:
                    outcomes[method] = future.result()
                except Exception as e:
                    # Probes are individually guarded; this only catches bugs in a pass
                    self.log("error", f"[DETECTION] {method.value} pass failed for {url}: {e}", site=host_of(url))
                    outcomes[method] = ({}, [])

        methods_used: List[str] = []
        matches: List[DetectionMatch] = []
        for method in PASS_ORDER:
            scores, pass_matches = outcomes[method]
            for provider in self._in_catalog_order(scores):
                methods_used.append(f"{method.value}:{provider}")
            matches.extend(pass_matches)

        totals = merge_scores([outcomes[m][0] for m in PASS_ORDER])
        providers = self._rank(totals)

        primary = providers[0] if providers else None
        result = DetectionResult(
            domain=host_of(url),
            normalized_url=url,
            candidate_providers=providers,
            primary_provider=primary,
            overall_confidence=primary.confidence if primary else 0,
            detection_methods_used=methods_used,
            recommendations=generate_recommendations(providers),
            automation_available=any(p.has_automated_sitemap for p in providers),
            matches=matches,
            duration_ms=int((time.time() - start_time) * 1000),
        )

        self.log(
            "info",
            f"[DETECTION] {url} -> "
            f"{primary.provider_name if primary else 'none'} "
            f"(confidence={result.overall_confidence}, candidates={len(providers)}, "
            f"{result.duration_ms}ms)",
            site=result.domain,
        )

        if identity_context:
            self._persist(result, identity_context, user_agent)

        return result

    def quick_detect(self, url: str) -> Optional[str]:
        """
        Single HEAD request, checked against one distinguishing header per
        well-known provider. No DNS or path probes.
        """
        try:
            target = normalize_target(url)
        except ValueError as e:
            self.log("error", f"[DETECTION] Quick detect failed: {e}")
            return None

        response = self._prober.head(target, user_agent=QUICK_USER_AGENT, follow_redirects=True)
        if response is None:
            return None

        for header, provider in QUICK_SIGNATURES:
            if response.header(header):
                return provider
        return None

    def shutdown(self, wait: bool = True) -> None:
        """Wait for pending result writes, then release the worker and the HTTP pool."""
        if self._persist_executor is not None:
            self._persist_executor.shutdown(wait=wait)
        self._prober.close()

    def log(self, level: str, msg: str, site: Optional[str] = None) -> None:
        getattr(logger, level)(msg, extra={'context': site or self.name})

    # === DETECTION PASSES ===

    def _detect_via_headers(self, url: str, user_agent: str) -> PassOutcome:
        """
        Score = matched header signatures / declared header signatures x 100.
        """
        scores: Dict[str, float] = {}
        matches: List[DetectionMatch] = []

        response = self._prober.head(url, user_agent=user_agent, follow_redirects=True)
        if response is None:
            return scores, matches

        for fp in self._catalog.fingerprints:
            total = len(fp.header_signatures)
            if total == 0:
                continue

            weight = HEADER_MAX_WEIGHT / total
            matched = 0
            for header_name, rule in fp.header_signatures:
                value = response.header(header_name)
                if value and rule.matches(value):
                    matched += 1
                    matches.append(DetectionMatch(
                        method=DetectionMethod.HEADERS,
                        provider_name=fp.provider_name,
                        signal_key=header_name,
                        observed_value=value,
                        matched_pattern=rule.describe(),
                        weight=weight,
                    ))

            if matched > 0:
                scores[fp.provider_name] = (matched / total) * HEADER_MAX_WEIGHT

        return scores, matches

    def _detect_via_dns(self, url: str, user_agent: str) -> PassOutcome:
        """
        Redirect-target heuristic only: no CNAME/NS lookup is performed.
        Each probe whose Location contains a provider's DNS signature adds
        DNS_MATCH_WEIGHT to that provider.
        """
        scores: Dict[str, float] = {}
        matches: List[DetectionMatch] = []
        # Keep an explicit port so this pass hits the same server as the others
        authority = authority_of(url)

        for probe_url in (f"https://{authority}", f"http://{authority}"):
            response = self._prober.head(probe_url, user_agent=user_agent, follow_redirects=False)
            if response is None or not response.location:
                continue

            location = response.location
            for fp in self._catalog.fingerprints:
                hit = next((sig for sig in fp.dns_signatures if sig in location), None)
                if hit is None:
                    continue
                scores[fp.provider_name] = scores.get(fp.provider_name, 0.0) + DNS_MATCH_WEIGHT
                matches.append(DetectionMatch(
                    method=DetectionMethod.DNS,
                    provider_name=fp.provider_name,
                    signal_key=probe_url,
                    observed_value=location,
                    matched_pattern=f"contains:{hit}",
                    weight=DNS_MATCH_WEIGHT,
                ))

        return scores, matches

    def _detect_via_paths(self, url: str, user_agent: str) -> PassOutcome:
        """
        Score = matched paths / declared paths x PATH_MAX_WEIGHT.
        200, 403 and 404 all mean the server routed the request.
        """
        scores: Dict[str, float] = {}
        matches: List[DetectionMatch] = []

        targets = [
            (fp.provider_name, path)
            for fp in self._catalog.fingerprints
            for path in fp.path_signatures
        ]
        if not targets:
            return scores, matches

        base_url = origin_of(url)
        statuses: Dict[Tuple[str, str], Optional[int]] = {}

        with ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(targets)),
            thread_name_prefix="PathProbe"
        ) as executor:
            future_to_target = {
                executor.submit(self._path_status, f"{base_url}{path}", user_agent): (provider, path)
                for provider, path in targets
            }
            for future in as_completed(future_to_target):
                target = future_to_target[future]
                try:
                    statuses[target] = future.result()
                except Exception as e:
                    self.log(
                        "warning",
                        f"[PROBE] Path probe {target[1]} for {target[0]} failed: {e}",
                        site=host_of(url),
                    )
                    statuses[target] = None

        for fp in self._catalog.fingerprints:
            total = len(fp.path_signatures)
            if total == 0:
                continue

            weight = PATH_MAX_WEIGHT / total
            matched = 0
            for path in fp.path_signatures:
                status = statuses.get((fp.provider_name, path))
                if status in PATH_EXISTS_STATUSES:
                    matched += 1
                    matches.append(DetectionMatch(
                        method=DetectionMethod.PATHS,
                        provider_name=fp.provider_name,
                        signal_key=path,
                        observed_value=str(status),
                        matched_pattern="status in " + ",".join(str(s) for s in sorted(PATH_EXISTS_STATUSES)),
                        weight=weight,
                    ))

            if matched > 0:
                scores[fp.provider_name] = (matched / total) * PATH_MAX_WEIGHT

        return scores, matches

    def _path_status(self, url: str, user_agent: str) -> Optional[int]:
        response = self._prober.head(url, user_agent=user_agent, follow_redirects=True)
        return response.status_code if response is not None else None

    # === AGGREGATION ===

    def _in_catalog_order(self, scores: Dict[str, float]) -> List[str]:
        return sorted(scores, key=self._catalog.order_of)

    def _rank(self, totals: Dict[str, float]) -> List[DetectedProvider]:
        providers = []
        for name in self._in_catalog_order(totals):
            confidence = totals[name]
            if confidence <= CONFIDENCE_FLOOR:
                continue
            profile = self._catalog.profile_for(name)
            providers.append(DetectedProvider(
                provider_name=name,
                display_name=profile.display_name if profile else name,
                confidence=confidence,
                category=profile.category if profile else None,
                profile=profile,
            ))
        # Stable: equal confidences keep catalog order
        providers.sort(key=lambda p: p.confidence, reverse=True)
        return providers

    # === PERSISTENCE ===

    def _persist(self, result: DetectionResult, identity_context: str, user_agent: str) -> None:
        """Fire-and-forget hand-off to the result store."""
        if self._store is None:
            return
        try:
            enabled = self._store.is_enabled()
        except Exception as e:
            self.log("error", f"[STORE] Availability check failed: {e}", site=result.domain)
            return
        if not enabled:
            return

        record = DetectionRecord(
            identity_context=identity_context,
            domain=site_key(result.domain),
            normalized_url=result.normalized_url,
            candidate_providers=[p.to_dict() for p in result.candidate_providers],
            primary_provider_name=result.primary_provider.provider_name if result.primary_provider else None,
            overall_confidence=int(round(result.overall_confidence)),
            detection_methods_used=list(result.detection_methods_used),
            detection_matches=[m.to_dict() for m in result.matches],
            duration_ms=result.duration_ms,
            user_agent=user_agent,
        )
        try:
            self._persist_executor.submit(self._save_record, record)
        except RuntimeError as e:
            # Executor already shut down
            self.log("error", f"[STORE] Could not queue detection for {record.domain}: {e}", site=record.domain)

    def _save_record(self, record: DetectionRecord) -> None:
        try:
            self._store.save(record)
            self.log(
                "info",
                f"[STORE] Saved detection for {record.domain} ({record.primary_provider_name or 'none'})",
                site=record.domain,
            )
        except Exception as e:
            self.log("error", f"[STORE] Failed to save detection for {record.domain}: {e}", site=record.domain)
