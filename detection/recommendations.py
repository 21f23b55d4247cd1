"""
Deployment guidance derived from a detection result.
Pure formatting; no I/O.
"""

from typing import List, Optional, Sequence

from detection.models import DetectedProvider, ProviderCapabilityProfile, ProviderCategory

SUPPORTED_PROVIDERS_HINT = "Cloudflare, Vercel, Netlify"


def generate_recommendations(providers: Sequence[DetectedProvider]) -> List[str]:
    """
    Rules, applied to the primary (first) provider:
    - none detected        -> manual deployment + suggest a supported provider
    - automatable primary  -> enable integration, auth needs, deployment methods
    - otherwise            -> manual deployment + suggest upgrading hosting
    - CDN primary          -> origin server note appended
    """
    recommendations = []

    if not providers:
        recommendations.append("No hosting provider detected. Manual sitemap/robots.txt deployment required.")
        recommendations.append(
            f"Consider using a supported hosting provider ({SUPPORTED_PROVIDERS_HINT}) "
            "for automated SEO deployment."
        )
        return recommendations

    primary = providers[0]
    profile = primary.profile

    if profile is not None and profile.has_automated_deployment:
        recommendations.append(f"Automated deployment available via {primary.display_name} integration")
        recommendations.append(f"Enable {primary.display_name} API integration in SEOAgent settings")

        auth = profile.auth_requirements
        if auth is not None:
            if auth.api_key:
                recommendations.append(f"Configure {primary.display_name} API credentials for automated deployment")
            if auth.token:
                recommendations.append(f"Required credential: {auth.token}")
            if auth.oauth:
                recommendations.append(f"Connect your {primary.display_name} account via OAuth")

        if profile.deployment_methods:
            recommendations.append(f"Deployment methods: {', '.join(profile.deployment_methods)}")
    else:
        recommendations.append(f"Manual deployment required for {primary.display_name}")
        recommendations.append("Consider upgrading to a hosting provider with API integration support")

    if primary.category == ProviderCategory.CDN:
        recommendations.append("CDN detected - ensure origin server supports SEO file deployment")

    return recommendations


def get_integration_instructions(provider: ProviderCapabilityProfile, domain: str) -> str:
    """Markdown setup steps for enabling automated sitemap/robots.txt deployment."""
    name = provider.display_name
    auth = provider.auth_requirements
    lines = [
        f"# {name} Integration Setup",
        "",
        "To enable automated sitemap and robots.txt deployment:",
        "",
        "1. **Authentication Setup:**",
    ]

    if auth is not None and auth.api_key:
        lines.append(f"   - Generate an API key in your {name} dashboard")
        lines.append("   - Add the API key to SEOAgent settings")
    if auth is not None and auth.token:
        lines.append(f"   - Create a {auth.token} in your {name} account")
        lines.append("   - Configure the token in SEOAgent integration settings")
    if auth is not None and auth.oauth:
        lines.append(f"   - Authorize SEOAgent through {name} OAuth")
    if auth is None or not (auth.api_key or auth.token or auth.oauth):
        lines.append("   - No credentials required")

    lines.append("")
    lines.append("2. **Deployment Methods:**")
    for method in provider.deployment_methods:
        lines.append(f"   - {method}")

    host = _bare_host(domain)
    lines.extend([
        "",
        "3. **Verification:**",
        f"   - Test deployment: https://{host}/sitemap.xml",
        f"   - Verify robots.txt: https://{host}/robots.txt",
        "   - Monitor deployment status in SEOAgent dashboard",
        "",
        "4. **Documentation:**",
    ])
    for capability in provider.capabilities:
        if capability.documentation:
            lines.append(f"   - {capability.kind.value}: {capability.documentation}")

    return "\n".join(lines)


def _bare_host(domain: Optional[str]) -> str:
    host = (domain or "").strip()
    if "://" in host:
        host = host.split("://", 1)[1]
    return host.split("/", 1)[0]
