"""Apple `.mobileconfig` 描述文件渲染。"""

from __future__ import annotations

import plistlib
from dataclasses import replace

from .constants import PROFILE_IDENTIFIER_PREFIX
from .convert import collect_rule_lines, derive_uuid, loader_script_url
from .models import BuildSettings, RulesDocument


def dump_plist(profile: dict) -> bytes:
    # sort_keys=False 保留字段声明顺序。
    return plistlib.dumps(profile, fmt=plistlib.FMT_XML, sort_keys=False)


def dns_settings(servers: tuple[str, ...]) -> dict:
    """构造 DNSSettings。

    `https://` 开头的解析器按 DoH 输出 ServerURL，其余按地址列表输出。
    """

    doh = [server for server in servers if server.startswith("https://")]
    if doh:
        settings: dict = {"DNSProtocol": "HTTPS", "ServerURL": doh[0]}
        addresses = [server for server in servers if not server.startswith("https://")]
        if addresses:
            settings["ServerAddresses"] = addresses
        return settings
    return {"ServerAddresses": list(servers)}


def render_dns_profile(doc: RulesDocument, settings: BuildSettings, warnings: list[str]) -> bytes:
    """只包含 DNS 设置的描述文件。"""

    servers = ",".join(settings.dns_servers)
    profile_uuid = derive_uuid(settings, "dns-profile", servers)
    payload_uuid = derive_uuid(settings, "dns-payload", servers)

    profile = {
        "PayloadContent": [
            {
                "PayloadType": "com.apple.dnsSettings.managed",
                "PayloadVersion": 1,
                "PayloadIdentifier": f"{PROFILE_IDENTIFIER_PREFIX}.dns.{payload_uuid}",
                "PayloadUUID": payload_uuid,
                "PayloadDisplayName": "DNS Resolver",
                "PayloadDescription": "Secure DNS resolver settings",
                "DNSSettings": dns_settings(settings.dns_servers),
            }
        ],
        "PayloadDescription": "Configures DNS resolver",
        "PayloadDisplayName": "DNS Settings",
        "PayloadIdentifier": f"{PROFILE_IDENTIFIER_PREFIX}.{profile_uuid}",
        "PayloadRemovalDisallowed": False,
        "PayloadType": "Configuration",
        "PayloadUUID": profile_uuid,
        "PayloadVersion": 1,
    }
    return dump_plist(profile)


def render_client_profile(
    doc: RulesDocument, settings: BuildSettings, warnings: list[str]
) -> bytes:
    """携带策略组、规则列表、MITM 与注入脚本的客户端描述文件。

    规则列表与 shadowrocket.conf 的 [Rule] 段同序，只是兜底改指向描述文件分组。
    """

    group = settings.mobileconfig_group
    if group not in doc.group_names() and group != settings.final_group:
        warnings.append(f"mobileconfig: 分组 `{group}` 未在 groups 中声明")

    profile_settings = replace(settings, final_group=group)
    refs = [rule_set.url for rule_set in doc.external_rule_sets]
    rule_list = collect_rule_lines(doc, profile_settings, "shadowrocket", warnings, refs, "FINAL")

    content_uuid = derive_uuid(settings, "client-profile", group)
    payload_uuid = derive_uuid(settings, "client-payload", group)
    payload: dict = {
        "PayloadType": "com.shadowrocket.configuration",
        "PayloadVersion": 1,
        "PayloadIdentifier": f"{PROFILE_IDENTIFIER_PREFIX}.shadowrocket.{group.lower()}",
        "PayloadUUID": payload_uuid,
        "PayloadDisplayName": f"Shadowrocket Config - {group}",
        "PayloadDescription": "Routing rules and MITM settings",
        "ProxyGroup": group,
        "RuleList": rule_list,
        "MITM": {
            "enabled": bool(doc.mitm_hostnames),
            "domains": list(doc.mitm_hostnames),
        },
    }
    script_url = loader_script_url(doc, settings)
    if script_url:
        payload["Script"] = {"enabled": True, "url": script_url}

    profile = {
        "PayloadContent": [payload],
        "PayloadDescription": "Routing rules, MITM hostnames and loader script",
        "PayloadDisplayName": "Shadowrocket AutoLoader",
        "PayloadIdentifier": f"{PROFILE_IDENTIFIER_PREFIX}.shadowrocket",
        "PayloadType": "Configuration",
        "PayloadUUID": content_uuid,
        "PayloadVersion": 1,
    }
    return dump_plist(profile)
