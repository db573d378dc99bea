"""构建设置解析测试：命令行 > 环境变量 > 默认值。"""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SCRIPTS_DIR = ROOT / "scripts"
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from profilegen.cli import parse_args  # noqa: E402
from profilegen.settings import SettingsError, resolve_settings  # noqa: E402
from profilegen.targets import TARGETS  # noqa: E402


def resolve(argv: list[str], environ: dict[str, str] | None = None):
    return resolve_settings(parse_args(argv), environ or {}, tuple(TARGETS))


class ResolveSettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = resolve([])
        self.assertEqual(settings.input_path, "configs/master-rules.yaml")
        self.assertEqual(settings.output_dir, "apps/loader/public")
        self.assertEqual(settings.dns_servers, ("1.1.1.1",))
        self.assertEqual(settings.final_group, "Proxy")
        self.assertEqual(settings.mobileconfig_group, "US")
        self.assertEqual(settings.reject_policy, "REJECT")
        self.assertEqual(settings.targets, tuple(TARGETS))
        self.assertEqual(settings.cache_dir, ".build/obfuscation-cache")
        self.assertEqual(settings.build_tag, "")
        self.assertGreaterEqual(settings.max_jobs, 1)

    def test_environment_overrides_defaults(self) -> None:
        settings = resolve(
            [],
            {
                "DNS_SERVER": "9.9.9.9, 8.8.8.8",
                "PREFER_GROUP": "EU",
                "MASTER_RULES": "other.yaml",
                "BUILD_MAX_JOBS": "3",
                "GIT_COMMIT": "0123456789abcdef",
                "BASE_URL": "https://cdn.example.com/",
            },
        )
        self.assertEqual(settings.dns_servers, ("9.9.9.9", "8.8.8.8"))
        self.assertEqual(settings.mobileconfig_group, "EU")
        self.assertEqual(settings.input_path, "other.yaml")
        self.assertEqual(settings.max_jobs, 3)
        self.assertEqual(settings.build_tag, "0123456")
        self.assertEqual(settings.base_url, "https://cdn.example.com")

    def test_mobileconfig_group_prefers_specific_variable(self) -> None:
        settings = resolve([], {"MOBILECONFIG_GROUP": "JP", "PREFER_GROUP": "EU"})
        self.assertEqual(settings.mobileconfig_group, "JP")

    def test_cli_overrides_environment(self) -> None:
        settings = resolve(
            ["--dns", "4.4.4.4", "--jobs", "2", "--input", "x.yaml", "--no-cache"],
            {"DNS_SERVER": "9.9.9.9", "BUILD_MAX_JOBS": "8", "MASTER_RULES": "y.yaml"},
        )
        self.assertEqual(settings.dns_servers, ("4.4.4.4",))
        self.assertEqual(settings.max_jobs, 2)
        self.assertEqual(settings.input_path, "x.yaml")
        self.assertIsNone(settings.cache_dir)

    def test_target_selection(self) -> None:
        settings = resolve(["--targets", "loon, stash"])
        self.assertEqual(settings.targets, ("loon", "stash"))
        with self.assertRaises(SettingsError):
            resolve(["--targets", "loon,surge"])

    def test_invalid_max_jobs(self) -> None:
        with self.assertRaises(SettingsError):
            resolve([], {"BUILD_MAX_JOBS": "many"})
        with self.assertRaises(SettingsError):
            resolve(["--jobs", "0"])

    def test_watch_interval(self) -> None:
        self.assertEqual(resolve([]).watch_interval, 1.0)
        settings = resolve(["--watch", "--watch-interval", "2.5"])
        self.assertTrue(settings.watch)
        self.assertEqual(settings.watch_interval, 2.5)
        with self.assertRaises(SettingsError):
            resolve(["--watch-interval", "0"])

    def test_debug_implies_verbose(self) -> None:
        settings = resolve(["--debug"])
        self.assertTrue(settings.verbose)
        self.assertTrue(settings.debug)


if __name__ == "__main__":
    unittest.main()
