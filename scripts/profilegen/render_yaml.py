"""Clash 风格 YAML 配置渲染：Stash / Tunna。"""

from __future__ import annotations

import yaml

from .constants import (
    RULE_PROVIDER_INTERVAL,
    SCRIPT_PATTERN,
    SCRIPT_TAG,
    STASH_DNS_FALLBACK,
)
from .convert import (
    annotation_lines,
    collect_rule_lines,
    dedupe_keep_order,
    effective_groups,
    emitted_proxies,
    loader_script_url,
    proxy_uuid,
    rule_set_provider_names,
)
from .models import BuildSettings, Proxy, RulesDocument


def dump_yaml(data: dict, header: list[str]) -> str:
    """按声明顺序输出 YAML；header 为可选注释行。"""

    body = yaml.safe_dump(
        data,
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=False,
        width=120,
    )
    if not header:
        return body
    return "\n".join(header) + "\n" + body


def stash_proxy(proxy: Proxy) -> dict:
    """把代理映射为 Clash.Meta / Stash 语法。"""

    item: dict = {
        "name": proxy.name,
        "type": proxy.type,
        "server": proxy.host,
        "port": proxy.port,
    }
    if proxy.type in {"http", "socks5"}:
        if proxy.user:
            item["username"] = proxy.user
        if proxy.password:
            item["password"] = proxy.password
        if proxy.tls:
            item["tls"] = True
    elif proxy.type == "ss":
        item["cipher"] = proxy.cipher
        item["password"] = proxy.password
    elif proxy.type in {"vmess", "vless"}:
        item["uuid"] = proxy_uuid(proxy)
        if proxy.type == "vmess":
            item["alterId"] = 0
            item["cipher"] = "auto"
        item["tls"] = proxy.tls
        item["servername"] = proxy.servername or proxy.host
        item["network"] = "ws" if proxy.ws else "tcp"
    elif proxy.type == "trojan":
        item["password"] = proxy.password
        item["sni"] = proxy.servername or proxy.host
        if proxy.ws:
            item["network"] = "ws"

    if proxy.ws:
        item["ws-opts"] = {"path": proxy.ws_path or "/"}
    if proxy.skip_cert_verify is not None and proxy.type != "ss":
        item["skip-cert-verify"] = proxy.skip_cert_verify
    if proxy.type != "http":
        item["udp"] = proxy.udp
    return item


def render_stash(doc: RulesDocument, settings: BuildSettings, warnings: list[str]) -> str:
    """生成 stash.yaml（Clash 风格，外部规则集转为 rule-providers）。"""

    client = "stash"
    proxies = emitted_proxies(doc, client, warnings, settings.strict)
    provider_names = rule_set_provider_names(doc)

    config: dict = {
        "mixed-port": 7890,
        "allow-lan": False,
        "mode": "rule",
        "ipv6": False,
        "log-level": "info",
        "dns": {
            "enable": True,
            "ipv6": False,
            "enhanced-mode": "fake-ip",
            "nameserver": list(settings.dns_servers),
            "fallback": list(STASH_DNS_FALLBACK),
        },
        "proxies": [stash_proxy(proxy) for proxy in proxies],
        "proxy-groups": [
            {"name": name, "type": "select", "proxies": members}
            for name, members in effective_groups(
                doc, settings.final_group, [proxy.name for proxy in proxies], client, warnings
            )
        ],
    }

    if provider_names:
        config["rule-providers"] = {
            name: {
                "type": "http",
                "behavior": "classical",
                "format": "text",
                "url": rule_set.url,
                "path": f"./rules/{name}.list",
                "interval": RULE_PROVIDER_INTERVAL,
            }
            for name, rule_set in zip(provider_names, doc.external_rule_sets)
        }

    config["rules"] = collect_rule_lines(doc, settings, client, warnings, provider_names, "MATCH")

    script_url = loader_script_url(doc, settings)
    http: dict = {}
    if doc.mitm_hostnames:
        http["mitm"] = list(doc.mitm_hostnames)
    if script_url:
        http["script"] = [
            {
                "match": SCRIPT_PATTERN,
                "name": SCRIPT_TAG,
                "type": "response",
                "require-body": True,
                "timeout": 10,
            }
        ]
    if http:
        config["http"] = http
    if script_url:
        config["script-providers"] = {
            SCRIPT_TAG: {"url": script_url, "interval": RULE_PROVIDER_INTERVAL}
        }

    return dump_yaml(config, annotation_lines(settings, client))


def tunna_proxy(proxy: Proxy) -> dict:
    item: dict = {
        "name": proxy.name,
        "type": proxy.type,
        "server": proxy.host,
        "port": proxy.port,
    }
    if proxy.type in {"vmess", "vless"}:
        item["uuid"] = proxy_uuid(proxy)
    else:
        if proxy.user:
            item["username"] = proxy.user
        if proxy.password:
            item["password"] = proxy.password
    item["tls"] = proxy.tls
    if proxy.servername:
        item["sni"] = proxy.servername
    item["udp-relay"] = proxy.udp
    if proxy.ws:
        item["obfs"] = "ws"
        item["obfs-uri"] = proxy.ws_path or "/"
    return item


def render_tunna(doc: RulesDocument, settings: BuildSettings, warnings: list[str]) -> str:
    """生成 tunna.yaml：只含节点、分组与规则的精简隧道配置。"""

    client = "tunna"
    proxies = emitted_proxies(doc, client, warnings, settings.strict)
    config: dict = {
        "mode": "Rule",
        "log-level": "info",
        "dns": {
            "enable": True,
            "default-nameserver": dedupe_keep_order([*settings.dns_servers, "8.8.8.8"]),
        },
        "proxies": [tunna_proxy(proxy) for proxy in proxies],
        "proxy-groups": [
            {"name": name, "type": "select", "proxies": members}
            for name, members in effective_groups(
                doc, settings.final_group, [proxy.name for proxy in proxies], client, warnings
            )
        ],
    }
    # Tunna 不支持远程规则集，外部规则集只在文本客户端与 Stash 中输出。
    tunna_doc = RulesDocument(
        proxies=doc.proxies,
        groups=doc.groups,
        rules=doc.rules,
        block_domains=doc.block_domains,
    )
    if doc.external_rule_sets:
        warnings.append(f"tunna: 不支持 RULE-SET，已忽略 {len(doc.external_rule_sets)} 个外部规则集")
    config["rules"] = collect_rule_lines(tunna_doc, settings, client, warnings, [], "MATCH")
    return dump_yaml(config, annotation_lines(settings, client))
