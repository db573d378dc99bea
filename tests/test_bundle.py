"""静态包与产物校验测试。"""

from __future__ import annotations

import hashlib
import json
import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SCRIPTS_DIR = ROOT / "scripts"
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from profilegen.bundle import (  # noqa: E402
    build_manifest,
    render_catalog,
    render_checksums,
    render_index,
    render_manifest,
    render_mitm_loader,
)
from profilegen.validate import validate_outputs  # noqa: E402


def write(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


class ManifestTests(unittest.TestCase):
    def test_manifest_lists_every_payload_and_nothing_else(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            obf = Path(tmp) / "obfuscated"
            write(obf / "b.js.b64", b"YmJi")
            write(obf / "sub" / "a.js.b64", b"YWFh")
            write(obf / "other.txt", b"ignored")

            entries = build_manifest(obf)
            self.assertEqual([entry.name for entry in entries], ["b.js.b64", "sub/a.js.b64"])
            self.assertEqual(entries[0].size, 4)
            self.assertEqual(entries[0].hash, hashlib.sha256(b"YmJi").hexdigest())

            data = json.loads(render_manifest(entries))
            self.assertEqual(data[1], {"name": "sub/a.js.b64", "size": 4, "hash": entries[1].hash})

    def test_missing_directory_gives_empty_manifest(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(build_manifest(Path(tmp) / "nope"), [])
            self.assertEqual(render_manifest([]), "[]\n")

    def test_minified_manifest_has_no_whitespace(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            obf = Path(tmp)
            write(obf / "x.js.b64", b"eA==")
            text = render_manifest(build_manifest(obf), minify=True)
            self.assertNotIn(" ", text.strip())
            self.assertEqual(text.count("\n"), 1)


class PageTests(unittest.TestCase):
    def test_default_index_references_loader(self) -> None:
        page = render_index(["a.js.b64"])
        self.assertIn('<script src="./scripts/mitm-loader.js"></script>', page)
        self.assertNotIn("a.js.b64", page)

    def test_index_template_placeholder(self) -> None:
        page = render_index(["a.js.b64", "b.js.b64"], template="<pre>__PAYLOADS__</pre>")
        self.assertNotIn("__PAYLOADS__", page)
        inner = page[len("<pre>"):-len("</pre>")]
        self.assertEqual(json.loads(inner), ["a.js.b64", "b.js.b64"])

    def test_catalog_links_are_escaped(self) -> None:
        page = render_catalog(["configs/loon.conf"], ['x"<y>.js.b64'])
        self.assertIn('<a href="./configs/loon.conf">configs/loon.conf</a>', page)
        self.assertIn("./obfuscated/x&quot;&lt;y&gt;.js.b64", page)
        self.assertNotIn("<y>", page)

    def test_catalog_template_placeholder(self) -> None:
        page = render_catalog(["configs/stash.yaml"], [], template="<ul>__CATALOG_LIST__</ul>")
        self.assertEqual(page, '<ul><li><a href="./configs/stash.yaml">configs/stash.yaml</a></li></ul>')

    def test_catalog_lists_qr_codes(self) -> None:
        page = render_catalog(["configs/loon.conf"], [], qr_files=["qrcodes/loon.conf.png"])
        self.assertIn("<h1>QR codes</h1>", page)
        self.assertIn('<img src="./qrcodes/loon.conf.png"', page)
        self.assertNotIn("QR codes", render_catalog(["configs/loon.conf"], []))

    def test_loader_reads_manifest(self) -> None:
        script = render_mitm_loader()
        self.assertIn("/manifest.json", script)
        self.assertIn("/obfuscated/", script)
        self.assertIn("atob(", script)


class ChecksumTests(unittest.TestCase):
    def test_sha256sum_format_sorted(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            write(root / "b.txt", b"b")
            write(root / "a" / "c.txt", b"c")
            text = render_checksums(root, ["b.txt", "a/c.txt"])
            self.assertEqual(
                text.splitlines(),
                [
                    f"{hashlib.sha256(b'c').hexdigest()}  a/c.txt",
                    f"{hashlib.sha256(b'b').hexdigest()}  b.txt",
                ],
            )
            self.assertEqual(render_checksums(root, []), "")


class ValidateOutputsTests(unittest.TestCase):
    def build_tree(self, root: Path) -> list[str]:
        write(root / "configs" / "loon.conf", b"[General]\n[Rule]\nFINAL, Proxy\n")
        write(root / "configs" / "stash.yaml", b"proxies: []\nproxy-groups: []\nrules: []\n")
        write(root / "obfuscated" / "a.js.b64", b"YQ==")
        write(root / "manifest.json", json.dumps([{"name": "a.js.b64"}]).encode("utf-8"))
        write(root / "index.html", b"<html></html>")
        return ["configs/loon.conf", "configs/stash.yaml"]

    def test_clean_tree_passes(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            files = self.build_tree(root)
            self.assertEqual(validate_outputs(root, files), [])

    def test_broken_artifacts_are_reported(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            files = self.build_tree(root)
            write(root / "configs" / "loon.conf", b"[General]\n")
            write(root / "configs" / "stash.yaml", b"proxies: {}\n")
            write(root / "configs" / "empty.conf", b"")
            write(root / "manifest.json", json.dumps(["a.js.b64", "gone.js.b64"]).encode("utf-8"))

            errors = validate_outputs(root, files + ["configs/empty.conf"])
            self.assertTrue(any("[Rule]" in item for item in errors))
            self.assertTrue(any("proxy-groups" in item for item in errors))
            self.assertTrue(any("empty.conf" in item for item in errors))
            self.assertTrue(any("gone.js.b64" in item for item in errors))
            self.assertFalse(any("a.js.b64" in item and "gone" not in item for item in errors))

    def test_zero_byte_payload_fails(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            files = self.build_tree(root)
            write(root / "obfuscated" / "a.js.b64", b"")
            errors = validate_outputs(root, files)
            self.assertTrue(any("a.js.b64" in item for item in errors))


if __name__ == "__main__":
    unittest.main()
