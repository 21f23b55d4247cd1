import unittest

from probe.url_utils import authority_of, host_of, normalize_target, origin_of, site_key


class TestNormalizeTarget(unittest.TestCase):

    def test_bare_host_gets_https(self):
        self.assertEqual(normalize_target("example.com"), "https://example.com")
        self.assertEqual(normalize_target("  Example.COM  "), "https://example.com")

    def test_full_url_kept(self):
        self.assertEqual(normalize_target("HTTP://Example.com/Blog?q=1#top"), "http://example.com/Blog?q=1")
        self.assertEqual(normalize_target("https://example.com:8443/"), "https://example.com:8443/")

    def test_empty_rejected(self):
        for value in ("", "   ", None):
            with self.assertRaises(ValueError):
                normalize_target(value)

    def test_hostless_rejected(self):
        with self.assertRaises(ValueError):
            normalize_target("https://")


class TestUrlParts(unittest.TestCase):

    def test_origin_and_host(self):
        url = "https://shop.example.com:8443/products?id=1"
        self.assertEqual(origin_of(url), "https://shop.example.com:8443")
        self.assertEqual(host_of(url), "shop.example.com")
        self.assertEqual(authority_of(url), "shop.example.com:8443")
        self.assertEqual(authority_of("https://example.com/blog"), "example.com")

    def test_site_key(self):
        self.assertEqual(site_key("www.example.com"), "example.com")
        self.assertEqual(site_key("https://blog.example.co.uk/post"), "example.co.uk")
        self.assertEqual(site_key("localhost:8000"), "localhost")
        self.assertEqual(site_key(""), "")


if __name__ == "__main__":
    unittest.main()
