"""规则源加载、结构校验与解析测试。"""

from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SCRIPTS_DIR = ROOT / "scripts"
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from profilegen.models import SourceError  # noqa: E402
from profilegen.source import (  # noqa: E402
    load_rules_file,
    parse_rules_document,
    validate_rules_document,
)


class LoadRulesFileTests(unittest.TestCase):
    def test_empty_document_loads_as_empty_mapping(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "master-rules.yaml"
            path.write_text("", encoding="utf-8")
            self.assertEqual(load_rules_file(path), {})

    def test_non_mapping_root_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "master-rules.yaml"
            path.write_text("- a\n- b\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_rules_file(path)

    def test_inline_flow_entries_are_parsed(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "master-rules.yaml"
            path.write_text(
                "proxies:\n"
                "  us:\n"
                '    - { type: "socks5", name: "S1", host: "1.2.3.4", port: 1080 }\n'
                "groups:\n"
                "  US: [S1]\n",
                encoding="utf-8",
            )
            data = load_rules_file(path)
            self.assertEqual(data["proxies"]["us"][0]["port"], 1080)
            self.assertEqual(data["groups"]["US"], ["S1"])


class ValidateRulesDocumentTests(unittest.TestCase):
    def test_wrong_container_types_are_errors(self) -> None:
        errors, _ = validate_rules_document(
            {"proxies": "oops", "groups": ["a"], "rules": {"a": 1}, "scripts": []}
        )
        self.assertTrue(any("`proxies`" in item for item in errors))
        self.assertTrue(any("`groups`" in item for item in errors))
        self.assertTrue(any("`rules`" in item for item in errors))
        self.assertTrue(any("`scripts`" in item for item in errors))

    def test_dangling_references_are_warnings(self) -> None:
        raw = {
            "proxies": {"us": [{"type": "http", "name": "H1", "host": "h", "port": 80}]},
            "groups": {"US": ["H1", "MISSING"]},
            "rules": [
                {"type": "DOMAIN", "value": "a.com", "group": "NOPE"},
                {"type": "DOMAIN", "value": "b.com", "group": "Proxy"},
            ],
        }
        errors, warnings = validate_rules_document(raw, extra_groups=("Proxy",))
        self.assertEqual(errors, [])
        self.assertTrue(any("MISSING" in item for item in warnings))
        self.assertTrue(any("NOPE" in item for item in warnings))
        self.assertFalse(any("Proxy" in item for item in warnings))

    def test_duplicate_proxy_name_in_region(self) -> None:
        raw = {
            "proxies": {
                "us": [
                    {"type": "http", "name": "H1", "host": "a", "port": 80},
                    {"type": "http", "name": "H1", "host": "b", "port": 80},
                ],
                "eu": [{"type": "http", "name": "H1", "host": "c", "port": 80}],
            }
        }
        _, warnings = validate_rules_document(raw)
        self.assertEqual(len([item for item in warnings if "重复" in item]), 1)


class ParseRulesDocumentTests(unittest.TestCase):
    def test_lenient_mode_drops_malformed_entries(self) -> None:
        raw = {
            "proxies": {
                "us": [
                    {"type": "socks5", "name": "S1", "host": "1.2.3.4", "port": 1080},
                    {"type": "socks5", "name": "NoHost", "port": 1080},
                    {"type": "http", "name": "BadPort", "host": "h", "port": "abc"},
                ]
            },
            "rules": [
                {"type": "DOMAIN", "value": "a.com", "group": "US"},
                {"type": "DOMAIN", "group": "US"},
                {"type": "DOMAIN", "value": "b.com"},
                "GEOIP,CN,DIRECT",
            ],
            "external_rule_sets": [{"url": "https://example.com/a.list"}],
        }
        doc, warnings = parse_rules_document(raw)
        self.assertEqual(doc.proxy_names(), ["S1"])
        self.assertEqual(len(doc.rules), 2)
        self.assertEqual(doc.rules[1].raw, "GEOIP,CN,DIRECT")
        self.assertEqual(doc.external_rule_sets, ())
        self.assertTrue(any("NoHost" in item and "host" in item for item in warnings))
        self.assertTrue(any("BadPort" in item and "port" in item for item in warnings))
        self.assertTrue(any("value" in item for item in warnings))
        self.assertTrue(any("group" in item for item in warnings))

    def test_strict_mode_raises_on_missing_rule_field(self) -> None:
        with self.assertRaises(SourceError):
            parse_rules_document({"rules": [{"type": "DOMAIN", "group": "US"}]}, strict=True)

    def test_flat_proxy_list_and_field_aliases(self) -> None:
        raw = {
            "proxies": [
                {
                    "type": "SOCKS",
                    "name": "S1",
                    "server": "1.2.3.4",
                    "port": "1080",
                    "username": "u",
                    "password": "p",
                    "sni": "example.com",
                }
            ]
        }
        doc, warnings = parse_rules_document(raw)
        self.assertEqual(warnings, [])
        proxy = doc.proxies[0]
        self.assertEqual(proxy.region, "default")
        self.assertEqual(proxy.type, "socks5")
        self.assertEqual(proxy.host, "1.2.3.4")
        self.assertEqual(proxy.port, 1080)
        self.assertEqual((proxy.user, proxy.password), ("u", "p"))
        self.assertEqual(proxy.servername, "example.com")

    def test_empty_sections_produce_empty_document(self) -> None:
        doc, warnings = parse_rules_document(
            {"proxies": {}, "groups": {}, "rules": [], "mitm_hostnames": None}
        )
        self.assertEqual(warnings, [])
        self.assertEqual(doc.proxies, ())
        self.assertEqual(doc.groups, ())
        self.assertEqual(doc.rules, ())
        self.assertIsNone(doc.loader_url)

    def test_order_is_preserved(self) -> None:
        raw = {
            "groups": {"B": ["x"], "A": ["y"]},
            "rules": [
                {"type": "domain-suffix", "value": "z.com", "group": "B"},
                {"type": "DOMAIN", "value": "a.com", "group": "A"},
            ],
            "scripts": {"loader_url": " https://cdn.example.com/mitm-loader.js "},
        }
        doc, _ = parse_rules_document(raw)
        self.assertEqual(doc.group_names(), ["B", "A"])
        self.assertEqual([rule.value for rule in doc.rules], ["z.com", "a.com"])
        self.assertEqual(doc.rules[0].type, "DOMAIN-SUFFIX")
        self.assertEqual(doc.loader_url, "https://cdn.example.com/mitm-loader.js")

    def test_to_dict_round_trips_canonical_fields(self) -> None:
        raw = {
            "proxies": {"us": [{"type": "http", "name": "H1", "host": "h", "port": 80, "pass": "x"}]},
            "groups": {"US": ["H1"]},
            "rules": ["MATCH,US"],
        }
        doc, _ = parse_rules_document(raw)
        data = doc.to_dict()
        self.assertEqual(data["proxies"]["us"][0]["pass"], "x")
        self.assertNotIn("region", data["proxies"]["us"][0])
        self.assertEqual(data["groups"], {"US": ["H1"]})
        self.assertEqual(data["rules"], ["MATCH,US"])


class BooleanFlagTests(unittest.TestCase):
    def parse_one(self, **fields):
        proxy = {"type": "vmess", "name": "V1", "host": "v.example.com", "port": 443, "uuid": "id", **fields}
        doc, warnings = parse_rules_document({"proxies": {"us": [proxy]}})
        return doc.proxies[0], warnings

    def test_string_false_is_false(self) -> None:
        proxy, warnings = self.parse_one(tls="false", ws="False", fast_open="off", skip_cert_verify="false")
        self.assertFalse(proxy.tls)
        self.assertFalse(proxy.ws)
        self.assertFalse(proxy.fast_open)
        self.assertFalse(proxy.skip_cert_verify)
        self.assertEqual(warnings, [])

    def test_string_true_and_numeric_flags(self) -> None:
        proxy, _ = self.parse_one(tls="true", ws="yes", fast_open=1, udp="no")
        self.assertTrue(proxy.tls)
        self.assertTrue(proxy.ws)
        self.assertTrue(proxy.fast_open)
        self.assertFalse(proxy.udp)

    def test_unknown_value_falls_back_to_default_with_warning(self) -> None:
        proxy, warnings = self.parse_one(ws="maybe", udp="sometimes")
        self.assertFalse(proxy.ws)
        self.assertTrue(proxy.udp)
        self.assertEqual(len(warnings), 2)
        self.assertIn("`ws`", warnings[0])
        self.assertIn("`V1`", warnings[0])

    def test_missing_flags_use_defaults(self) -> None:
        proxy, _ = self.parse_one()
        self.assertFalse(proxy.tls)
        self.assertTrue(proxy.udp)
        self.assertIsNone(proxy.skip_cert_verify)

    def test_rule_no_resolve_string(self) -> None:
        raw = {
            "rules": [
                {"type": "IP-CIDR", "value": "1.1.1.0/24", "group": "US", "no_resolve": "true"},
                {"type": "IP-CIDR", "value": "8.8.8.0/24", "group": "US", "no_resolve": "false"},
            ]
        }
        doc, _ = parse_rules_document(raw)
        self.assertTrue(doc.rules[0].no_resolve)
        self.assertFalse(doc.rules[1].no_resolve)


if __name__ == "__main__":
    unittest.main()
