"""规则文档、构建设置与产物的中间模型。"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field


class SourceError(ValueError):
    """strict 模式下源文件存在不合格条目。"""


class RenderError(ValueError):
    """单个渲染器无法生成产物；只终止该渲染器。"""


@dataclass(frozen=True)
class Proxy:
    """单个代理节点。

    字段名与 master-rules.yaml 的规范写法一致（`pass` 在 Python 中为关键字，改为 `password`）。
    """

    region: str
    type: str
    name: str
    host: str
    port: int
    user: str | None = None
    password: str | None = None
    tls: bool = False
    ws: bool = False
    ws_path: str | None = None
    servername: str | None = None
    uuid: str | None = None
    cipher: str | None = None
    skip_cert_verify: bool | None = None
    fast_open: bool = False
    udp: bool = True


@dataclass(frozen=True)
class Rule:
    """单条路由规则；`raw` 非空时为原样透传的字符串规则。"""

    type: str = ""
    value: str = ""
    group: str = ""
    no_resolve: bool = False
    raw: str | None = None


@dataclass(frozen=True)
class ExternalRuleSet:
    url: str
    group: str


@dataclass(frozen=True)
class RulesDocument:
    """一次构建内只读共享的规则文档。

    groups 保持声明顺序；成员只是名字引用，不拥有代理对象。
    """

    proxies: tuple[Proxy, ...] = ()
    groups: tuple[tuple[str, tuple[str, ...]], ...] = ()
    rules: tuple[Rule, ...] = ()
    external_rule_sets: tuple[ExternalRuleSet, ...] = ()
    block_domains: tuple[str, ...] = ()
    mitm_hostnames: tuple[str, ...] = ()
    loader_url: str | None = None

    def proxy_names(self) -> list[str]:
        return [proxy.name for proxy in self.proxies]

    def group_names(self) -> list[str]:
        return [name for name, _ in self.groups]

    def to_dict(self) -> dict:
        """导出为可 JSON 序列化的规范化结构（`--emit-json`）。"""

        proxies: dict[str, list[dict]] = {}
        for proxy in self.proxies:
            item = {key: value for key, value in asdict(proxy).items() if value not in (None, False)}
            region = item.pop("region")
            if "password" in item:
                item["pass"] = item.pop("password")
            proxies.setdefault(region, []).append(item)

        rules: list = []
        for rule in self.rules:
            if rule.raw is not None:
                rules.append(rule.raw)
                continue
            item = {"type": rule.type, "value": rule.value, "group": rule.group}
            if rule.no_resolve:
                item["no_resolve"] = True
            rules.append(item)

        data: dict = {
            "proxies": proxies,
            "groups": {name: list(members) for name, members in self.groups},
            "rules": rules,
            "external_rule_sets": [asdict(item) for item in self.external_rule_sets],
            "block_domains": list(self.block_domains),
            "mitm_hostnames": list(self.mitm_hostnames),
        }
        if self.loader_url:
            data["scripts"] = {"loader_url": self.loader_url}
        return data


@dataclass(frozen=True)
class BuildSettings:
    """启动时一次性解析出的构建配置，显式传给每个步骤。"""

    input_path: str
    output_dir: str
    dns_servers: tuple[str, ...]
    final_group: str
    mobileconfig_group: str
    reject_policy: str
    max_jobs: int
    targets: tuple[str, ...]
    payload_dirs: tuple[str, ...]
    cache_dir: str | None
    build_tag: str = ""
    base_url: str = ""
    obfuscator: str | None = None
    obfuscator_timeout: float | None = None
    index_template: str | None = None
    catalog_template: str | None = None
    strict: bool = False
    annotate: bool = False
    minify: bool = False
    emit_json: bool = False
    dry: bool = False
    random_uuid: bool = False
    verbose: bool = False
    debug: bool = False
    skip_obfuscation: bool = False
    skip_validation: bool = False
    watch: bool = False
    watch_interval: float = 1.0
    interactive: bool = False


@dataclass
class Artifact:
    """渲染结果；写文件由编排层单独完成。"""

    target: str
    file_name: str
    content: bytes


@dataclass
class PayloadResult:
    """单个 payload 的混淆结果。error 非空表示该 payload 被跳过。"""

    source: str
    name: str
    output: str | None = None
    cached: bool = False
    error: str | None = None


@dataclass(frozen=True)
class ManifestEntry:
    name: str
    size: int
    hash: str


@dataclass
class RenderReport:
    """一次渲染全部目标的汇总。"""

    artifacts: list[Artifact] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
