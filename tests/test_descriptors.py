import json
import tempfile
import unittest
from pathlib import Path

from bazaarkit.client import BazaarError, DescriptorParseError, PackageNotFoundError
from bazaarkit.descriptors import descriptor_path, install_path, installed_dir_names, read_descriptor, slot_dir


class TestLayout(unittest.TestCase):
    def test_slot_directories(self) -> None:
        ws = Path("/ws")
        self.assertEqual(slot_dir(ws, "plugins"), ws / "data" / "plugins")
        self.assertEqual(slot_dir(ws, "templates"), ws / "data" / "templates")
        self.assertEqual(slot_dir(ws, "icons"), ws / "conf" / "appearance" / "icons")
        self.assertEqual(descriptor_path(ws, "themes", "dark"), ws / "conf" / "appearance" / "themes" / "dark" / "theme.json")
        self.assertEqual(descriptor_path(ws, "widgets", "clock"), ws / "data" / "widgets" / "clock" / "widget.json")

    def test_rejects_unsafe_names(self) -> None:
        for name in ("", "..", "a/b", "a\\b"):
            with self.assertRaises(BazaarError, msg=name):
                install_path(Path("/ws"), "plugins", name)
        with self.assertRaises(BazaarError):
            slot_dir(Path("/ws"), "fonts")


class TestReadDescriptor(unittest.TestCase):
    def test_missing_descriptor(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(PackageNotFoundError):
                read_descriptor(Path(td), "plugins", "nope")

    def test_invalid_json(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = descriptor_path(Path(td), "plugins", "broken")
            path.parent.mkdir(parents=True)
            path.write_text("{not json", encoding="utf-8")

            with self.assertLogs("bazaarkit.descriptors", level="ERROR"):
                with self.assertRaises(DescriptorParseError):
                    read_descriptor(Path(td), "plugins", "broken")

    def test_reads_descriptor_and_trims_url(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = descriptor_path(Path(td), "icons", "ant")
            path.parent.mkdir(parents=True)
            path.write_text(
                json.dumps({"name": "ant", "version": "1.2.0", "url": "https://github.com/a/ant/", "backends": ["all"]}),
                encoding="utf-8",
            )

            pkg = read_descriptor(Path(td), "icons", "ant")

        self.assertEqual(pkg.name, "ant")
        self.assertEqual(pkg.url, "https://github.com/a/ant")
        self.assertEqual(pkg.backends, ("all",))

    def test_installed_dir_names(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            ws = Path(td)
            self.assertEqual(installed_dir_names(ws, "widgets"), [])
            root = slot_dir(ws, "widgets")
            (root / "zeta").mkdir(parents=True)
            (root / "alpha").mkdir()
            (root / ".hidden").mkdir()
            (root / "notes.txt").write_text("x", encoding="utf-8")

            self.assertEqual(installed_dir_names(ws, "widgets"), ["alpha", "zeta"])


if __name__ == "__main__":
    unittest.main()
