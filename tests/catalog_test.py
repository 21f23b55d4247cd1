import json
import unittest

from detection.catalog import (
    CAPABILITY_TABLE,
    DEFAULT_CATALOG,
    FINGERPRINT_TABLE,
    ProviderCatalog,
    build_profile,
    catalog_from_records,
)
from detection.matching import RegexMatch, SubstringMatch
from detection.models import CapabilityKind, ProviderCategory, ProviderFingerprint


class TestDefaultCatalog(unittest.TestCase):

    def test_declaration_order(self):
        self.assertEqual(DEFAULT_CATALOG.provider_names, [row["provider"] for row in FINGERPRINT_TABLE])
        self.assertEqual(DEFAULT_CATALOG.provider_names[0], "cloudflare")
        self.assertEqual(len(DEFAULT_CATALOG), 10)

    def test_detection_only_providers(self):
        self.assertEqual(
            DEFAULT_CATALOG.validate(),
            ["wordpress_com", "fastly", "maxcdn", "keycdn"]
        )

    def test_every_profile_has_a_fingerprint(self):
        for row in CAPABILITY_TABLE:
            self.assertIn(row["provider"], DEFAULT_CATALOG.provider_names)

    def test_profiles(self):
        cloudflare = DEFAULT_CATALOG.profile_for("cloudflare")
        self.assertEqual(cloudflare.category, ProviderCategory.CDN)
        self.assertTrue(cloudflare.has_automated_sitemap)
        self.assertEqual(cloudflare.auth_requirements.token, "API_TOKEN")

        github = DEFAULT_CATALOG.profile_for("github_pages")
        self.assertFalse(github.has_automated_sitemap)
        self.assertIsNone(github.auth_requirements)

        self.assertIsNone(DEFAULT_CATALOG.profile_for("fastly"))

    def test_shopify_paths(self):
        shopify = next(fp for fp in DEFAULT_CATALOG.fingerprints if fp.provider_name == "shopify")
        self.assertEqual(shopify.path_signatures, ("/admin", "/cart.js", "/products.json"))
        self.assertEqual(len(shopify.header_signatures), 4)

    def test_duplicate_provider_rejected(self):
        with self.assertRaises(ValueError):
            ProviderCatalog([ProviderFingerprint("a"), ProviderFingerprint("a")], {})

    def test_build_profile_accepts_camel_case_auth_flag(self):
        profile = build_profile({
            "provider": "acme_host",
            "type": "hosting",
            "capabilities": [{"type": "robots_proxy", "automated": True, "requiresAuth": True}],
        })
        self.assertEqual(profile.display_name, "Acme Host")
        self.assertTrue(profile.capabilities[0].requires_auth)
        self.assertEqual(profile.capabilities[0].kind, CapabilityKind.ROBOTS_PROXY)
        self.assertTrue(profile.has_automated_deployment)
        self.assertFalse(profile.has_automated_sitemap)

    def test_unknown_category_rejected(self):
        with self.assertRaises(ValueError):
            build_profile({"provider": "x", "type": "mainframe"})


class TestCatalogFromRecords(unittest.TestCase):

    def _row(self, **kwargs):
        row = {
            "id": 1,
            "provider_name": "vercel",
            "provider_type": "hosting",
            "fingerprint_type": "header",
            "fingerprint_key": "X-Vercel-Id",
            "fingerprint_value": ".*",
            "fingerprint_pattern_type": "regex",
            "requires_auth": 1,
            "documentation_url": None,
            "deployment_methods": None,
            "capabilities": None,
        }
        row.update(kwargs)
        return row

    def test_rows_grouped_in_first_appearance_order(self):
        catalog = catalog_from_records([
            self._row(provider_name="netlify", fingerprint_key="x-nf-request-id"),
            self._row(),
            self._row(provider_name="netlify", fingerprint_type="dns",
                      fingerprint_key="cname", fingerprint_value="netlify.app"),
            self._row(fingerprint_key="server", fingerprint_value="vercel",
                      fingerprint_pattern_type="contains"),
        ])

        self.assertEqual(catalog.provider_names, ["netlify", "vercel"])
        netlify, vercel = catalog.fingerprints
        self.assertEqual(netlify.dns_signatures, ("netlify.app",))
        self.assertEqual(
            vercel.header_signatures,
            (("x-vercel-id", RegexMatch(".*")), ("server", SubstringMatch("vercel")))
        )
        # built-in profile reused
        self.assertEqual(catalog.profile_for("vercel").display_name, "Vercel")

    def test_bad_rows_are_skipped(self):
        catalog = catalog_from_records([
            self._row(fingerprint_pattern_type="glob"),
            self._row(provider_name=None),
            self._row(fingerprint_type="ssl_cert"),
            self._row(fingerprint_key="x-vercel-cache"),
            self._row(fingerprint_type="path", fingerprint_key="/_vercel/insights"),
        ])

        vercel = catalog.fingerprints[0]
        self.assertEqual(len(catalog), 1)
        self.assertEqual([h for h, _ in vercel.header_signatures], ["x-vercel-cache"])
        self.assertEqual(vercel.path_signatures, ("/_vercel/insights",))

    def test_profile_from_capabilities_column(self):
        catalog = catalog_from_records([
            self._row(
                provider_name="render",
                fingerprint_key="x-render-origin-server",
                documentation_url="https://render.com/docs",
                deployment_methods=json.dumps(["render.yaml"]),
                capabilities=json.dumps([{"type": "sitemap_redirect", "automated": True}]),
            ),
            self._row(provider_name="unprofiled", fingerprint_key="x-unknown"),
        ])

        render = catalog.profile_for("render")
        self.assertEqual(render.category, ProviderCategory.HOSTING)
        self.assertEqual(render.deployment_methods, ("render.yaml",))
        self.assertEqual(render.capabilities[0].documentation, "https://render.com/docs")
        self.assertTrue(render.auth_requirements.api_key)
        self.assertEqual(catalog.validate(), ["unprofiled"])


if __name__ == "__main__":
    unittest.main()
