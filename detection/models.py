from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple


class ProviderCategory(Enum):
    CDN = "cdn"
    HOSTING = "hosting"
    PLATFORM = "platform"
    CMS = "cms"


class CapabilityKind(Enum):
    SITEMAP_PROXY = "sitemap_proxy"
    SITEMAP_REDIRECT = "sitemap_redirect"
    ROBOTS_PROXY = "robots_proxy"
    ROBOTS_REDIRECT = "robots_redirect"
    EDGE_FUNCTION = "edge_function"
    SERVERLESS_FUNCTION = "serverless_function"

    @property
    def deploys_sitemap(self) -> bool:
        return self in (CapabilityKind.SITEMAP_PROXY, CapabilityKind.SITEMAP_REDIRECT)

    @property
    def deploys_robots(self) -> bool:
        return self in (CapabilityKind.ROBOTS_PROXY, CapabilityKind.ROBOTS_REDIRECT)


class DetectionMethod(Enum):
    HEADERS = "headers"
    DNS = "dns"
    PATHS = "paths"


@dataclass(frozen=True)
class Capability:
    kind: CapabilityKind
    automated: bool
    requires_auth: bool
    documentation: Optional[str] = None


@dataclass(frozen=True)
class AuthRequirements:
    api_key: bool = False
    oauth: bool = False
    token: Optional[str] = None  # credential name, e.g. VERCEL_TOKEN


@dataclass(frozen=True)
class ProviderCapabilityProfile:
    """
    Static catalog entry: what automation is possible once a provider is identified.
    """
    provider_name: str
    display_name: str
    category: ProviderCategory
    capabilities: Tuple[Capability, ...] = ()
    auth_requirements: Optional[AuthRequirements] = None
    deployment_methods: Tuple[str, ...] = ()
    api_endpoints: Mapping[str, str] = field(default_factory=dict)

    @property
    def has_automated_sitemap(self) -> bool:
        return any(c.automated and c.kind.deploys_sitemap for c in self.capabilities)

    @property
    def has_automated_deployment(self) -> bool:
        return any(
            c.automated and (c.kind.deploys_sitemap or c.kind.deploys_robots)
            for c in self.capabilities
        )


@dataclass(frozen=True)
class ProviderFingerprint:
    """
    Declarative signatures for one provider.
    header_signatures: ordered (header_name, rule) pairs
    dns_signatures: CNAME substrings looked for in redirect targets
    path_signatures: provider-specific paths probed on the target origin
    """
    provider_name: str
    header_signatures: Tuple[Tuple[str, Any], ...] = ()
    dns_signatures: Tuple[str, ...] = ()
    path_signatures: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DetectionMatch:
    """One signal that matched during a single detection run."""
    method: DetectionMethod
    provider_name: str
    signal_key: str
    observed_value: str
    matched_pattern: str
    weight: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method.value,
            "provider": self.provider_name,
            "signal": self.signal_key,
            "observed": self.observed_value,
            "pattern": self.matched_pattern,
            "weight": round(self.weight, 2),
        }


@dataclass(frozen=True)
class DetectedProvider:
    provider_name: str
    display_name: str
    confidence: float
    category: Optional[ProviderCategory] = None
    profile: Optional[ProviderCapabilityProfile] = None  # None = detection-only

    @property
    def capabilities(self) -> Tuple[Capability, ...]:
        return self.profile.capabilities if self.profile else ()

    @property
    def has_automated_sitemap(self) -> bool:
        return bool(self.profile and self.profile.has_automated_sitemap)

    def to_dict(self) -> Dict[str, Any]:
        profile = self.profile
        return {
            "provider": self.provider_name,
            "name": self.display_name,
            "type": self.category.value if self.category else None,
            "confidence": self.confidence,
            "capabilities": [
                {
                    "type": c.kind.value,
                    "automated": c.automated,
                    "requires_auth": c.requires_auth,
                    "documentation": c.documentation,
                }
                for c in self.capabilities
            ],
            "deployment_methods": list(profile.deployment_methods) if profile else [],
        }


@dataclass(frozen=True)
class DetectionResult:
    """
    Output of detect_provider. Always well-formed, including when
    nothing was detected.
    """
    domain: str
    normalized_url: str
    candidate_providers: List[DetectedProvider]
    primary_provider: Optional[DetectedProvider]
    overall_confidence: float
    detection_methods_used: List[str]
    recommendations: List[str]
    automation_available: bool
    matches: List[DetectionMatch] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def integration_available(self) -> bool:
        return self.automation_available

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "url": self.normalized_url,
            "providers": [p.to_dict() for p in self.candidate_providers],
            "primary_provider": self.primary_provider.provider_name if self.primary_provider else None,
            "confidence": self.overall_confidence,
            "detection_methods": list(self.detection_methods_used),
            "recommendations": list(self.recommendations),
            "integration_available": self.automation_available,
            "fingerprints_matched": [m.to_dict() for m in self.matches],
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class DetectionRecord:
    """
    Persisted audit row for one detection run.
    """
    identity_context: str
    domain: str
    normalized_url: str
    candidate_providers: List[Dict[str, Any]]
    primary_provider_name: Optional[str]
    overall_confidence: int
    detection_methods_used: List[str]
    detection_matches: List[Dict[str, Any]]
    duration_ms: int
    user_agent: str
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    record_id: Optional[int] = None
