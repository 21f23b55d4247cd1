"""
Provider catalog: fingerprints and capability profiles as declarative data.

FINGERPRINT_TABLE and CAPABILITY_TABLE are plain data. build_catalog() turns
them into immutable ProviderFingerprint / ProviderCapabilityProfile objects.
catalog_from_records() does the same for rows read from the
hosting_provider_fingerprints table. Declaration order is significant: it
breaks confidence ties.
"""

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from probe.core import logger
from detection.matching import parse_match_rule
from detection.models import (
    AuthRequirements,
    Capability,
    CapabilityKind,
    ProviderCapabilityProfile,
    ProviderCategory,
    ProviderFingerprint,
)

# (header, match kind, value)
FINGERPRINT_TABLE: List[Dict[str, Any]] = [
    {
        "provider": "cloudflare",
        "headers": [
            ("cf-ray", "regex", r"^[a-f0-9]+-[A-Z]{3}$"),
            ("server", "contains", "cloudflare"),
            ("cf-cache-status", "regex", r".*"),
            ("cf-request-id", "regex", r".*"),
        ],
        "dns": ["cloudflare.net", "cloudflarenet.com"],
    },
    {
        "provider": "vercel",
        "headers": [
            ("x-vercel-id", "regex", r".*"),
            ("x-vercel-cache", "regex", r".*"),
            ("server", "contains", "vercel"),
            ("x-matched-path", "regex", r".*"),
        ],
        "dns": ["vercel.app", "vercel.com", "zeit.co"],
    },
    {
        "provider": "netlify",
        "headers": [
            ("x-nf-request-id", "regex", r".*"),
            ("server", "contains", "netlify"),
            ("x-powered-by", "contains", "netlify"),
        ],
        "dns": ["netlify.com", "netlify.app"],
    },
    {
        "provider": "aws_cloudfront",
        "headers": [
            ("x-amz-cf-id", "regex", r".*"),
            ("x-amz-cf-pop", "regex", r".*"),
            ("server", "contains", "CloudFront"),
            ("x-cache", "contains", "cloudfront"),
        ],
        "dns": ["cloudfront.net", "amazonaws.com"],
    },
    {
        "provider": "github_pages",
        "headers": [
            ("server", "contains", "GitHub.com"),
            ("x-github-request-id", "regex", r".*"),
        ],
        "dns": ["github.io", "github.com"],
    },
    {
        "provider": "shopify",
        "headers": [
            ("server", "contains", "nginx"),
            ("x-shopid", "regex", r".*"),
            ("x-shardid", "regex", r".*"),
            ("x-shopify-stage", "regex", r".*"),
        ],
        "dns": ["shops.myshopify.com"],
        "paths": ["/admin", "/cart.js", "/products.json"],
    },
    {
        "provider": "wordpress_com",
        "headers": [
            ("x-hacker", "contains", "WordPress.com"),
            ("x-ac", "regex", r".*"),
        ],
        "dns": ["wordpress.com"],
    },
    {
        "provider": "fastly",
        "headers": [
            ("fastly-debug-digest", "regex", r".*"),
            ("x-served-by", "contains", "fastly"),
            ("x-cache", "contains", "fastly"),
        ],
    },
    {
        "provider": "maxcdn",
        "headers": [
            ("server", "contains", "NetDNA-cache"),
            ("x-cache", "contains", "maxcdn"),
        ],
    },
    {
        "provider": "keycdn",
        "headers": [
            ("server", "contains", "keycdn-engine"),
            ("x-cache", "contains", "keycdn"),
        ],
    },
]

CAPABILITY_TABLE: List[Dict[str, Any]] = [
    {
        "provider": "cloudflare",
        "name": "Cloudflare",
        "type": "cdn",
        "capabilities": [
            {"type": "sitemap_redirect", "automated": True, "requires_auth": True,
             "documentation": "https://developers.cloudflare.com/rules/"},
            {"type": "robots_redirect", "automated": True, "requires_auth": True},
            {"type": "edge_function", "automated": True, "requires_auth": True},
        ],
        "api_endpoints": {
            "sitemap": "https://api.cloudflare.com/client/v4/zones/{zone_id}/pagerules",
            "robots": "https://api.cloudflare.com/client/v4/zones/{zone_id}/pagerules",
        },
        "auth": {"api_key": True, "token": "API_TOKEN"},
        "deployment_methods": ["Page Rules", "Workers", "Transform Rules"],
    },
    {
        "provider": "vercel",
        "name": "Vercel",
        "type": "hosting",
        "capabilities": [
            {"type": "sitemap_redirect", "automated": True, "requires_auth": True,
             "documentation": "https://vercel.com/docs/projects/project-configuration#redirects"},
            {"type": "robots_redirect", "automated": True, "requires_auth": True},
            {"type": "serverless_function", "automated": True, "requires_auth": True},
        ],
        "api_endpoints": {
            "sitemap": "https://api.vercel.com/v1/projects/{project_id}/env",
            "robots": "https://api.vercel.com/v1/projects/{project_id}/env",
        },
        "auth": {"token": "VERCEL_TOKEN"},
        "deployment_methods": ["vercel.json redirects", "Next.js rewrites", "Edge Functions"],
    },
    {
        "provider": "netlify",
        "name": "Netlify",
        "type": "hosting",
        "capabilities": [
            {"type": "sitemap_redirect", "automated": True, "requires_auth": True,
             "documentation": "https://docs.netlify.com/routing/redirects/"},
            {"type": "robots_redirect", "automated": True, "requires_auth": True},
            {"type": "edge_function", "automated": True, "requires_auth": True},
        ],
        "api_endpoints": {
            "sitemap": "https://api.netlify.com/api/v1/sites/{site_id}/files",
            "robots": "https://api.netlify.com/api/v1/sites/{site_id}/files",
        },
        "auth": {"token": "NETLIFY_TOKEN"},
        "deployment_methods": ["_redirects file", "netlify.toml", "Edge Functions"],
    },
    {
        "provider": "aws_cloudfront",
        "name": "AWS CloudFront",
        "type": "cdn",
        "capabilities": [
            {"type": "sitemap_redirect", "automated": True, "requires_auth": True,
             "documentation": "https://docs.aws.amazon.com/cloudfront/"},
            {"type": "robots_redirect", "automated": True, "requires_auth": True},
        ],
        "auth": {"api_key": True, "token": "AWS_ACCESS_KEY_ID"},
        "deployment_methods": ["CloudFront Behaviors", "Lambda@Edge", "CloudFront Functions"],
    },
    {
        "provider": "github_pages",
        "name": "GitHub Pages",
        "type": "hosting",
        "capabilities": [
            {"type": "sitemap_proxy", "automated": False, "requires_auth": False,
             "documentation": "https://pages.github.com/"},
        ],
        "deployment_methods": ["Static files in repository"],
    },
    {
        "provider": "shopify",
        "name": "Shopify",
        "type": "cms",
        "capabilities": [
            {"type": "sitemap_proxy", "automated": True, "requires_auth": True,
             "documentation": "https://shopify.dev/api/admin-rest"},
            {"type": "robots_proxy", "automated": True, "requires_auth": True},
        ],
        "auth": {"token": "SHOPIFY_ACCESS_TOKEN"},
        "deployment_methods": ["Theme files", "Shopify Plus Scripts"],
    },
]


class ProviderCatalog:
    """
    Ordered, read-only view over fingerprints and their capability profiles.
    A fingerprint without a profile is detection-only.
    """

    def __init__(self, fingerprints: Sequence[ProviderFingerprint],
                 profiles: Mapping[str, ProviderCapabilityProfile]):
        self._fingerprints = tuple(fingerprints)
        self._profiles = dict(profiles)
        self._order = {fp.provider_name: i for i, fp in enumerate(self._fingerprints)}
        if len(self._order) != len(self._fingerprints):
            raise ValueError("Duplicate provider name in fingerprint catalog")

    @property
    def fingerprints(self):
        return self._fingerprints

    @property
    def profiles(self) -> Dict[str, ProviderCapabilityProfile]:
        return dict(self._profiles)

    @property
    def provider_names(self) -> List[str]:
        return [fp.provider_name for fp in self._fingerprints]

    def profile_for(self, provider_name: str) -> Optional[ProviderCapabilityProfile]:
        return self._profiles.get(provider_name)

    def order_of(self, provider_name: str) -> int:
        return self._order.get(provider_name, len(self._order))

    def validate(self) -> List[str]:
        """
        Log gaps between fingerprints and profiles.
        Returns the detection-only provider names.
        """
        detection_only = [n for n in self.provider_names if n not in self._profiles]
        for name in detection_only:
            logger.info(f"[CATALOG] {name}: no capability profile, detection-only")
        for name in self._profiles:
            if name not in self._order:
                logger.warning(f"[CATALOG] {name}: capability profile without fingerprint, never detected")
        return detection_only

    def __len__(self):
        return len(self._fingerprints)


def build_fingerprint(row: Mapping[str, Any]) -> ProviderFingerprint:
    headers = tuple(
        (header.lower(), parse_match_rule(kind, value))
        for header, kind, value in row.get("headers", ())
    )
    return ProviderFingerprint(
        provider_name=row["provider"],
        header_signatures=headers,
        dns_signatures=tuple(row.get("dns", ())),
        path_signatures=tuple(row.get("paths", ())),
    )


def build_profile(row: Mapping[str, Any]) -> ProviderCapabilityProfile:
    caps = tuple(
        Capability(
            kind=CapabilityKind(c["type"]),
            automated=bool(c.get("automated", False)),
            requires_auth=bool(c.get("requires_auth", c.get("requiresAuth", False))),
            documentation=c.get("documentation"),
        )
        for c in row.get("capabilities", ())
    )
    auth = row.get("auth")
    return ProviderCapabilityProfile(
        provider_name=row["provider"],
        display_name=row.get("name") or _display_name(row["provider"]),
        category=ProviderCategory(row["type"]),
        capabilities=caps,
        auth_requirements=AuthRequirements(
            api_key=bool(auth.get("api_key", False)),
            oauth=bool(auth.get("oauth", False)),
            token=auth.get("token"),
        ) if auth else None,
        deployment_methods=tuple(row.get("deployment_methods", ())),
        api_endpoints=dict(row.get("api_endpoints", {})),
    )


def build_catalog(fingerprint_rows: Iterable[Mapping[str, Any]],
                  capability_rows: Iterable[Mapping[str, Any]]) -> ProviderCatalog:
    fingerprints = [build_fingerprint(r) for r in fingerprint_rows]
    profiles = {}
    for r in capability_rows:
        profile = build_profile(r)
        profiles[profile.provider_name] = profile
    return ProviderCatalog(fingerprints, profiles)


def catalog_from_records(records: Iterable[Mapping[str, Any]],
                         base_profiles: Optional[Mapping[str, ProviderCapabilityProfile]] = None) -> ProviderCatalog:
    """
    Build a catalog from hosting_provider_fingerprints rows.

    Rows are grouped by provider in first-appearance order. A malformed row is
    logged and skipped; it never disables the rest of the catalog. Profiles
    come from base_profiles (the built-in table by default), or from the row's
    own capabilities column when the provider has no built-in profile.
    """
    if base_profiles is None:
        base_profiles = DEFAULT_CATALOG.profiles

    grouped: Dict[str, Dict[str, Any]] = {}
    profiles: Dict[str, ProviderCapabilityProfile] = {}

    for rec in records:
        name = rec.get("provider_name")
        if not name:
            logger.warning(f"[CATALOG] Skipping fingerprint row without provider_name: {rec.get('id')}")
            continue

        entry = grouped.setdefault(name, {"headers": [], "dns": [], "paths": []})
        fp_type = (rec.get("fingerprint_type") or "").lower()
        key = rec.get("fingerprint_key") or ""
        value = rec.get("fingerprint_value") or ""

        try:
            if fp_type == "header":
                rule = parse_match_rule(rec.get("fingerprint_pattern_type") or "contains", value)
                entry["headers"].append((key.lower(), rule))
            elif fp_type == "dns":
                if value not in entry["dns"]:
                    entry["dns"].append(value)
            elif fp_type == "path":
                if key not in entry["paths"]:
                    entry["paths"].append(key)
            else:
                logger.debug(f"[CATALOG] {name}: fingerprint type {fp_type!r} not probed, skipped")
                continue
        except ValueError as e:
            logger.warning(f"[CATALOG] {name}: skipping fingerprint {key!r}: {e}")
            continue

        if name not in profiles:
            profile = base_profiles.get(name) or _profile_from_record(rec)
            if profile is not None:
                profiles[name] = profile

    fingerprints = [
        ProviderFingerprint(
            provider_name=name,
            header_signatures=tuple(entry["headers"]),
            dns_signatures=tuple(entry["dns"]),
            path_signatures=tuple(entry["paths"]),
        )
        for name, entry in grouped.items()
    ]
    logger.info(f"[CATALOG] Loaded {len(fingerprints)} providers from fingerprint records")
    return ProviderCatalog(fingerprints, profiles)


def _profile_from_record(rec: Mapping[str, Any]) -> Optional[ProviderCapabilityProfile]:
    caps = _json_list(rec.get("capabilities"))
    if not caps:
        return None
    doc = rec.get("documentation_url")
    try:
        return build_profile({
            "provider": rec["provider_name"],
            "type": rec.get("provider_type") or "hosting",
            "capabilities": [dict(c, documentation=c.get("documentation") or doc) for c in caps],
            "auth": {"api_key": True} if rec.get("requires_auth") else None,
            "deployment_methods": _json_list(rec.get("deployment_methods")),
        })
    except (KeyError, ValueError) as e:
        logger.warning(f"[CATALOG] {rec['provider_name']}: unusable capabilities column: {e}")
        return None


def _json_list(value) -> list:
    if not value:
        return []
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    return list(value) if isinstance(value, (list, tuple)) else []


def _display_name(provider_name: str) -> str:
    return provider_name.replace("_", " ").title()


DEFAULT_CATALOG = build_catalog(FINGERPRINT_TABLE, CAPABILITY_TABLE)
