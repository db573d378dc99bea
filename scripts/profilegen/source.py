"""规则源文件加载、结构校验与解析。"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml

from .constants import (
    BUILTIN_POLICIES,
    DEFAULT_REGION,
    FALSE_STRINGS,
    PROXY_FIELD_ALIASES,
    PROXY_TYPE_ALIASES,
    TRUE_STRINGS,
)
from .models import ExternalRuleSet, Proxy, Rule, RulesDocument, SourceError

LIST_SECTIONS = ("rules", "external_rule_sets", "block_domains", "mitm_hostnames")


def load_rules_file(path: Path) -> dict:
    """读取 master-rules.yaml。

    空文档视为 `{}`；根节点不是映射时直接抛错，防止后续静默生成空配置。
    """

    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"规则文件根节点必须是映射，实际为 `{type(data).__name__}`")
    return data


def iter_raw_proxies(raw_proxies) -> list[tuple[str, object]]:
    """把 `{region: [...]}` 或扁平列表统一展开为 (region, entry)。"""

    if raw_proxies is None:
        return []
    if isinstance(raw_proxies, list):
        return [(DEFAULT_REGION, item) for item in raw_proxies]
    items: list[tuple[str, object]] = []
    for region, entries in raw_proxies.items():
        for item in entries or []:
            items.append((str(region), item))
    return items


def validate_rules_document(
    raw: dict, extra_groups: Iterable[str] = ()
) -> tuple[list[str], list[str]]:
    """校验规则文档结构。

    errors 表示无法继续的容器类型错误；warnings 只记录引用关系问题，不改写输入。
    `extra_groups` 是构建时合成的分组（如兜底分组），引用它们不算悬空。
    """

    errors: list[str] = []
    warnings: list[str] = []

    proxies = raw.get("proxies")
    if proxies is not None and not isinstance(proxies, (dict, list)):
        errors.append("`proxies` 必须是按区域分组的映射或列表。")
    elif isinstance(proxies, dict):
        for region, entries in proxies.items():
            if entries is not None and not isinstance(entries, list):
                errors.append(f"`proxies.{region}` 必须是列表。")

    groups = raw.get("groups")
    if groups is not None and not isinstance(groups, dict):
        errors.append("`groups` 必须是 `名称 -> 成员列表` 的映射。")
    elif isinstance(groups, dict):
        for name, members in groups.items():
            if members is not None and not isinstance(members, list):
                errors.append(f"`groups.{name}` 必须是列表。")

    for key in LIST_SECTIONS:
        if raw.get(key) is not None and not isinstance(raw[key], list):
            errors.append(f"`{key}` 必须是列表。")

    scripts = raw.get("scripts")
    if scripts is not None and not isinstance(scripts, dict):
        errors.append("`scripts` 必须是映射。")

    if errors:
        return errors, warnings

    proxy_names: set[str] = set()
    seen_by_region: dict[tuple[str, str], int] = {}
    for idx, (region, item) in enumerate(iter_raw_proxies(proxies), 1):
        if not isinstance(item, dict) or "name" not in item:
            continue
        name = str(item["name"])
        key = (region, name)
        if key in seen_by_region:
            warnings.append(f"区域 `{region}` 内代理名重复：`{name}`。")
        else:
            seen_by_region[key] = idx
        proxy_names.add(name)

    group_names = {str(name) for name in (groups or {})} | set(extra_groups)
    known = proxy_names | group_names | BUILTIN_POLICIES
    for name, members in (groups or {}).items():
        for member in members or []:
            if str(member) not in known:
                warnings.append(f"分组 `{name}` 引用了不存在的成员 `{member}`。")

    for idx, item in enumerate(raw.get("rules") or [], 1):
        if not isinstance(item, dict) or not item.get("group"):
            continue
        group = str(item["group"])
        if group not in known:
            warnings.append(f"规则 #{idx:02d} 指向未声明的分组 `{group}`。")

    return errors, warnings


def normalize_proxy_fields(item: dict) -> dict:
    """把字段别名折叠到规范名；规范名优先。"""

    result = dict(item)
    for alias, canonical in PROXY_FIELD_ALIASES.items():
        if alias in result and canonical not in result:
            result[canonical] = result[alias]
    return result


def parse_port(value) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if 1 <= port <= 65535:
        return port
    return None


def parse_flag(value, default: bool, field: str, label: str, warnings: list[str]) -> bool:
    """解析布尔开关：接受 bool、0/1 与 `true`/`false`/`yes`/`no`/`on`/`off` 字符串。

    其它取值回落为默认值并告警；字符串 `"false"` 解析为 False。
    """

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    warnings.append(f"{label} 的 `{field}` 取值 `{value}` 不是布尔值，按 {str(default).lower()} 处理。")
    return default


def _optional_str(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _reject(message: str, warnings: list[str], strict: bool) -> None:
    if strict:
        raise SourceError(message)
    warnings.append(f"{message} 已跳过。")


def parse_proxy(region: str, item, index: int, warnings: list[str], strict: bool) -> Proxy | None:
    """解析单个代理条目；缺少必填字段时按 lenient/strict 处理。"""

    if not isinstance(item, dict):
        _reject(f"代理 #{index:02d} 不是对象。", warnings, strict)
        return None

    data = normalize_proxy_fields(item)
    missing = [key for key in ("type", "name", "host") if not _optional_str(data.get(key))]
    port = parse_port(data.get("port"))
    if port is None:
        missing.append("port")
    if missing:
        label = data.get("name") or f"#{index:02d}"
        _reject(f"代理 `{label}` 缺少或包含无效字段：{', '.join(missing)}。", warnings, strict)
        return None

    proxy_type = str(data["type"]).strip().lower()
    proxy_type = PROXY_TYPE_ALIASES.get(proxy_type, proxy_type)
    name = str(data["name"]).strip()
    label = f"代理 `{name}`"
    skip_cert_verify = data.get("skip_cert_verify")
    if skip_cert_verify is not None:
        skip_cert_verify = parse_flag(skip_cert_verify, False, "skip_cert_verify", label, warnings)

    return Proxy(
        region=region,
        type=proxy_type,
        name=name,
        host=str(data["host"]).strip(),
        port=port,
        user=_optional_str(data.get("user")),
        password=_optional_str(data.get("pass")),
        tls=parse_flag(data.get("tls"), False, "tls", label, warnings),
        ws=parse_flag(data.get("ws"), False, "ws", label, warnings),
        ws_path=_optional_str(data.get("ws_path")),
        servername=_optional_str(data.get("servername")),
        uuid=_optional_str(data.get("uuid")),
        cipher=_optional_str(data.get("cipher")),
        skip_cert_verify=skip_cert_verify,
        fast_open=parse_flag(data.get("fast_open"), False, "fast_open", label, warnings),
        udp=parse_flag(data.get("udp"), True, "udp", label, warnings),
    )


def parse_rule(item, index: int, warnings: list[str], strict: bool) -> Rule | None:
    """字符串规则原样透传；对象规则必须包含 type/value/group。"""

    if isinstance(item, str):
        text = item.strip()
        if not text:
            return None
        return Rule(raw=text)
    if not isinstance(item, dict):
        _reject(f"规则 #{index:02d} 既不是字符串也不是对象。", warnings, strict)
        return None

    missing = [key for key in ("type", "value", "group") if not _optional_str(item.get(key))]
    if missing:
        _reject(f"规则 #{index:02d} 缺少字段：{', '.join(missing)}。", warnings, strict)
        return None

    return Rule(
        type=str(item["type"]).strip().upper(),
        value=str(item["value"]).strip(),
        group=str(item["group"]).strip(),
        no_resolve=parse_flag(
            item.get("no_resolve"), False, "no_resolve", f"规则 #{index:02d}", warnings
        ),
    )


def parse_rules_document(raw: dict, strict: bool = False) -> tuple[RulesDocument, list[str]]:
    """把已校验的原始映射转换为只读 `RulesDocument`。

    调用前应先通过 `validate_rules_document`；这里只处理条目级缺失字段。
    """

    warnings: list[str] = []

    proxies: list[Proxy] = []
    for idx, (region, item) in enumerate(iter_raw_proxies(raw.get("proxies")), 1):
        proxy = parse_proxy(region, item, idx, warnings, strict)
        if proxy is not None:
            proxies.append(proxy)

    groups = tuple(
        (str(name), tuple(str(member) for member in (members or [])))
        for name, members in (raw.get("groups") or {}).items()
    )

    rules: list[Rule] = []
    for idx, item in enumerate(raw.get("rules") or [], 1):
        rule = parse_rule(item, idx, warnings, strict)
        if rule is not None:
            rules.append(rule)

    rule_sets: list[ExternalRuleSet] = []
    for idx, item in enumerate(raw.get("external_rule_sets") or [], 1):
        if not isinstance(item, dict) or not _optional_str(item.get("url")) or not _optional_str(
            item.get("group")
        ):
            _reject(f"外部规则集 #{idx:02d} 缺少 url 或 group。", warnings, strict)
            continue
        rule_sets.append(ExternalRuleSet(url=str(item["url"]).strip(), group=str(item["group"]).strip()))

    scripts = raw.get("scripts") or {}

    document = RulesDocument(
        proxies=tuple(proxies),
        groups=groups,
        rules=tuple(rules),
        external_rule_sets=tuple(rule_sets),
        block_domains=tuple(d for d in (_optional_str(x) for x in raw.get("block_domains") or []) if d),
        mitm_hostnames=tuple(
            h for h in (_optional_str(x) for x in raw.get("mitm_hostnames") or []) if h
        ),
        loader_url=_optional_str(scripts.get("loader_url")),
    )
    return document, warnings
