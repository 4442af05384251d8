import unittest

from bazaarkit.models import Package
from bazaarkit.versions import compare_versions, disallow_display, is_incompatible, is_outdated


class TestCompareVersions(unittest.TestCase):
    def test_ordering(self) -> None:
        self.assertEqual(compare_versions("1.2.0", "1.2.0"), 0)
        self.assertEqual(compare_versions("1.2", "1.2.0"), 0)
        self.assertEqual(compare_versions("1", "1.0.0"), 0)
        self.assertLess(compare_versions("1.0.0", "1.0.1"), 0)
        self.assertGreater(compare_versions("1.10.0", "1.9.9"), 0)
        self.assertLess(compare_versions("1.0.0-beta", "1.0.0"), 0)
        self.assertLess(compare_versions("1.0.0-alpha.2", "1.0.0-alpha.10"), 0)
        self.assertLess(compare_versions("1.0.0-1", "1.0.0-alpha"), 0)
        self.assertEqual(compare_versions("1.0.0+build.1", "1.0.0+build.2"), 0)

    def test_invalid_versions_sort_first(self) -> None:
        self.assertLess(compare_versions("latest", "0.0.1"), 0)
        self.assertGreater(compare_versions("0.0.1", "1.2.3.4"), 0)
        self.assertEqual(compare_versions("abc", "xyz"), 0)
        self.assertLess(compare_versions("01.0.0", "1.0.0"), 0)
        self.assertLess(compare_versions("v1.0.0", "1.0.0"), 0)
        self.assertLess(compare_versions("", "0.0.0"), 0)

    def test_rejects_non_ascii_and_padded_versions(self) -> None:
        self.assertLess(compare_versions(" 1.0.1", "1.0.0"), 0)
        self.assertLess(compare_versions("1.0.1\n", "1.0.0"), 0)
        self.assertLess(compare_versions("1.0.0-\u03b1", "0.1.0"), 0)
        self.assertLess(compare_versions("\u0661.0.0", "0.0.1"), 0)
        self.assertLess(compare_versions("1.0.0+b@d", "0.0.1"), 0)
        self.assertLess(compare_versions("1.0.0-01", "0.0.1"), 0)
        self.assertLess(compare_versions("1.2+build", "0.0.1"), 0)
        self.assertEqual(compare_versions("1.0.0-x-y.7+001", "1.0.0-x-y.7"), 0)


def _pkg(url: str, name: str, version: str, repo_hash: str = "") -> Package:
    return Package(url=url, name=name, version=version, repo_hash=repo_hash)


class TestIsOutdated(unittest.TestCase):
    def test_newer_candidate_marks_outdated_and_copies_hash(self) -> None:
        local = _pkg("https://github.com/a/b", "N", "1.0.0")
        candidate = _pkg("https://github.com/a/b", "N", "1.0.1", repo_hash="cafebabe")

        self.assertTrue(is_outdated(local, [candidate]))
        self.assertEqual(local.repo_hash, "cafebabe")

    def test_name_mismatch_is_not_outdated(self) -> None:
        local = _pkg("https://github.com/a/b", "N", "1.0.0")
        candidate = _pkg("https://github.com/a/b", "M", "1.0.1", repo_hash="cafebabe")

        self.assertFalse(is_outdated(local, [candidate]))
        self.assertEqual(local.repo_hash, "")

    def test_non_source_host_url_is_never_outdated(self) -> None:
        local = _pkg("https://example.com/a/b", "N", "1.0.0")
        candidate = _pkg("https://example.com/a/b", "N", "9.0.0")
        self.assertFalse(is_outdated(local, [candidate]))

    def test_url_must_be_owner_and_repo(self) -> None:
        for url in ("https://github.com/a", "https://github.com/a/b/c", "https://github.com/a/ "):
            local = _pkg(url, "N", "1.0.0")
            self.assertFalse(is_outdated(local, [_pkg(url, "N", "2.0.0")]), url)

    def test_invalid_candidate_version_is_not_an_update(self) -> None:
        local = _pkg("https://github.com/a/b", "N", "0.1.0")
        candidate = _pkg("https://github.com/a/b", "N", "1.0.0-\u03b1", repo_hash="cafebabe")

        self.assertFalse(is_outdated(local, [candidate]))
        self.assertEqual(local.repo_hash, "")

    def test_equal_or_older_candidate(self) -> None:
        local = _pkg("https://github.com/a/b", "N", "1.0.1")
        self.assertFalse(is_outdated(local, [_pkg("https://github.com/a/b", "N", "1.0.1")]))
        self.assertFalse(is_outdated(local, [_pkg("https://github.com/a/b", "N", "1.0.0")]))


class TestDisplayGates(unittest.TestCase):
    def test_min_app_version(self) -> None:
        self.assertTrue(disallow_display(Package(min_app_version="3.1.0"), "3.0.9"))
        self.assertFalse(disallow_display(Package(min_app_version="3.0.9"), "3.0.9"))
        self.assertFalse(disallow_display(Package(), "0.0.1"))

    def test_incompatible_backend_or_frontend(self) -> None:
        self.assertFalse(is_incompatible(Package(), "linux", "desktop"))
        self.assertFalse(is_incompatible(Package(backends=("all",), frontends=("desktop",)), "ios", "desktop"))
        self.assertTrue(is_incompatible(Package(backends=("windows",)), "linux", "desktop"))
        self.assertTrue(is_incompatible(Package(frontends=("mobile",)), "linux", "desktop"))


if __name__ == "__main__":
    unittest.main()
