import re
import tldextract
from urllib.parse import urlparse, urlunparse

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)

# Bundled public suffix snapshot only; never fetch the list at runtime
_extract = tldextract.TLDExtract(suffix_list_urls=())


def normalize_target(domain: str) -> str:
    """
    Turn a bare hostname or full URL into a fetchable URL.
    - surrounding whitespace removed
    - https:// assumed when no http(s) scheme is given
    - host lowercased, fragment dropped
    """
    if domain is None or not domain.strip():
        raise ValueError("domain must be a non-empty string")

    url = domain.strip()
    if not _SCHEME_RE.match(url):
        url = "https://" + url

    p = urlparse(url)
    if not p.netloc:
        raise ValueError(f"Could not extract a host from {domain!r}")

    return urlunparse((
        p.scheme.lower(),
        p.netloc.lower(),
        p.path,
        p.params,
        p.query,
        ""
    ))


def origin_of(url: str) -> str:
    """scheme://host[:port] of a normalized URL, no trailing slash."""
    p = urlparse(url)
    return f"{p.scheme}://{p.netloc}"


def host_of(url: str) -> str:
    """Host of a normalized URL with any port stripped."""
    return urlparse(url).netloc.split(":")[0]


def site_key(url_or_host: str) -> str:
    """
    Registrable domain used to group detections of one site.
    www.example.co.uk and example.co.uk share the key example.co.uk.
    Hosts without a known suffix (localhost, IPs) are returned unchanged.
    """
    if not url_or_host:
        return ""
    host = url_or_host
    if "://" in host:
        host = host_of(host)
    host = host.strip().lower().split(":")[0]

    ext = _extract(host)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return host


def authority_of(url: str) -> str:
    """host[:port] of a normalized URL; an explicit port is kept."""
    return urlparse(url).netloc
