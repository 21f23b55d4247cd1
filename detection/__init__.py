from detection.models import (
    ProviderCategory,
    CapabilityKind,
    DetectionMethod,
    Capability,
    AuthRequirements,
    ProviderCapabilityProfile,
    ProviderFingerprint,
    DetectionMatch,
    DetectedProvider,
    DetectionResult,
    DetectionRecord,
)
from detection.matching import (
    ExactMatch,
    SubstringMatch,
    RegexMatch,
    PrefixMatch,
    SuffixMatch,
    parse_match_rule,
)
from detection.catalog import ProviderCatalog, DEFAULT_CATALOG, build_catalog, catalog_from_records
from detection.engine import ProviderDetector, merge_scores
from detection.recommendations import generate_recommendations, get_integration_instructions
from detection.storage import DetectionResultStore
