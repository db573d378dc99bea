"""各渲染器共用的转换逻辑。"""

from __future__ import annotations

import re
import uuid
from typing import Iterable
from urllib.parse import urlsplit

from .constants import (
    BUILTIN_POLICIES,
    CLIENT_PROXY_TYPES,
    CLIENT_RULE_TYPES,
    LOADER_SCRIPT,
    NO_RESOLVE_RULE_TYPES,
    SCRIPTS_DIR,
    UUID_NAMESPACE,
)
from .models import BuildSettings, Proxy, RenderError, Rule, RulesDocument


def dedupe_keep_order(items: Iterable[str]) -> list[str]:
    """按首次出现顺序去重。

    规则顺序决定客户端的首条命中，因此不能用会打乱顺序的去重方式。
    """

    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if not item or item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def note_issue(warnings: list[str], message: str, strict: bool) -> None:
    """记录渲染期问题：lenient 模式告警并跳过，strict 模式终止当前渲染器。"""

    if strict:
        raise RenderError(message)
    warnings.append(message)


def effective_groups(
    doc: RulesDocument,
    final_group: str,
    proxy_names: Iterable[str],
    client: str,
    warnings: list[str],
) -> list[tuple[str, list[str]]]:
    """返回实际输出的策略组。

    `proxy_names` 是当前客户端真正输出的节点；成员只保留这些节点、分组名与内置策略，
    被剔除的成员逐个告警。兜底分组未在 groups 中声明时合成一个 select 组，
    成员为全部已声明分组 + DIRECT，保证 FINAL/MATCH 指向的名字在每个客户端里都存在。
    """

    group_names = [name for name, _ in doc.groups]
    known = set(proxy_names) | set(group_names) | {final_group} | BUILTIN_POLICIES

    groups: list[tuple[str, list[str]]] = []
    for name, members in doc.groups:
        kept = []
        for member in members:
            if member in known:
                kept.append(member)
            else:
                warnings.append(f"{client}: 分组 `{name}` 的成员 `{member}` 未输出，已移除")
        # 空分组在客户端里无法选择，用 DIRECT 占位。
        groups.append((name, kept or ["DIRECT"]))
    if final_group not in group_names:
        groups.append((final_group, group_names + ["DIRECT"]))
    return groups


def rule_set_provider_names(doc: RulesDocument) -> list[str]:
    """为外部规则集生成 provider 名。

    取 URL 路径末段并去掉常见后缀；取不到时回落为 `ext<N>`，重名时追加序号。
    """

    used: set[str] = set()
    names: list[str] = []
    for idx, rule_set in enumerate(doc.external_rule_sets):
        tail = urlsplit(rule_set.url).path.rsplit("/", 1)[-1]
        base = re.sub(r"\.(list|ya?ml|txt|conf)$", "", tail)
        base = re.sub(r"[^A-Za-z0-9_-]+", "-", base).strip("-") or f"ext{idx}"
        name = base
        seq = 2
        while name in used:
            name = f"{base}-{seq}"
            seq += 1
        used.add(name)
        names.append(name)
    return names


def derive_uuid(settings: BuildSettings, *parts: str) -> str:
    """派生大写 UUID。

    默认对种子做 uuid5，同一输入多次构建得到同一值；`--random-uuid` 时改用 uuid4。
    """

    if settings.random_uuid:
        return str(uuid.uuid4()).upper()
    seed = "|".join(parts)
    return str(uuid.uuid5(uuid.UUID(UUID_NAMESPACE), seed)).upper()


def loader_script_url(doc: RulesDocument, settings: BuildSettings) -> str | None:
    """解析注入脚本地址：规则文件显式声明优先，其次由 base_url 推导。"""

    url = doc.loader_url
    if not url and settings.base_url:
        url = f"{settings.base_url}/{SCRIPTS_DIR}/{LOADER_SCRIPT}"
    if not url:
        return None
    if settings.build_tag:
        joiner = "&" if "?" in url else "?"
        url = f"{url}{joiner}v={settings.build_tag}"
    return url


def proxy_uuid(proxy: Proxy) -> str | None:
    """vmess/vless 的用户 ID；历史数据常把它写在 user 字段里。"""

    return proxy.uuid or proxy.user


def check_proxy(proxy: Proxy, client: str, warnings: list[str], strict: bool) -> bool:
    """检查代理能否在目标客户端表达：类型受支持且协议必需的凭据齐全。"""

    if proxy.type not in CLIENT_PROXY_TYPES[client]:
        note_issue(warnings, f"{client}: 代理 `{proxy.name}` 的类型 `{proxy.type}` 不受支持", strict)
        return False
    missing: list[str] = []
    if proxy.type == "ss":
        if not proxy.cipher:
            missing.append("cipher")
        if not proxy.password:
            missing.append("pass")
    elif proxy.type in {"vmess", "vless"} and not proxy_uuid(proxy):
        missing.append("uuid")
    elif proxy.type == "trojan" and not proxy.password:
        missing.append("pass")
    if missing:
        note_issue(
            warnings,
            f"{client}: 代理 `{proxy.name}` 缺少 {proxy.type} 必需字段：{', '.join(missing)}",
            strict,
        )
        return False
    return True


def emitted_proxies(doc: RulesDocument, client: str, warnings: list[str], strict: bool) -> list[Proxy]:
    return [proxy for proxy in doc.proxies if check_proxy(proxy, client, warnings, strict)]


def format_rule(
    rule: Rule,
    client: str,
    warnings: list[str],
    strict: bool,
    sep: str = ",",
) -> str | None:
    """把单条规则格式化为客户端规则行；不支持的类型返回 None。"""

    if rule.raw is not None:
        return rule.raw
    if rule.type not in CLIENT_RULE_TYPES[client]:
        note_issue(warnings, f"{client}: 不支持的规则类型 `{rule.type}`（{rule.value}）", strict)
        return None
    parts = [rule.type, rule.value, rule.group]
    if rule.no_resolve and rule.type in NO_RESOLVE_RULE_TYPES:
        parts.append("no-resolve")
    return sep.join(parts)


def collect_rule_lines(
    doc: RulesDocument,
    settings: BuildSettings,
    client: str,
    warnings: list[str],
    rule_set_refs: list[str],
    final_keyword: str,
    sep: str = ",",
) -> list[str]:
    """按统一顺序拼出规则行：声明规则 -> 外部规则集 -> 拦截域名 -> 兜底。

    `rule_set_refs` 与 `doc.external_rule_sets` 一一对应，文本客户端传 URL，
    Clash 系客户端传 provider 名。
    """

    lines: list[str] = []
    for rule in doc.rules:
        line = format_rule(rule, client, warnings, settings.strict, sep)
        if line:
            lines.append(line)
    for ref, rule_set in zip(rule_set_refs, doc.external_rule_sets):
        lines.append(sep.join(["RULE-SET", ref, rule_set.group]))
    for domain in doc.block_domains:
        lines.append(sep.join(["DOMAIN-SUFFIX", domain, settings.reject_policy]))
    lines.append(sep.join([final_keyword, settings.final_group]))
    return lines


def annotation_lines(settings: BuildSettings, client: str, prefix: str = "#") -> list[str]:
    """`--annotate` 时写在文本配置头部的来源注释；不含时间戳以保证可复现。"""

    if not settings.annotate:
        return []
    lines = [
        f"{prefix} {client} 配置，由 profilegen 根据 {settings.input_path} 自动生成，请勿手工修改。",
    ]
    if settings.build_tag:
        lines.append(f"{prefix} build: {settings.build_tag}")
    return lines
