"""渲染目标注册表：一个规则文档，多个序列化目标。"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Callable, Union

from .constants import CONFIGS_DIR, PROFILES_DIR
from .convert import dedupe_keep_order
from .models import Artifact, BuildSettings, RenderError, RenderReport, RulesDocument
from .render_plist import render_client_profile, render_dns_profile
from .render_text import render_loon, render_shadowrocket
from .render_yaml import render_stash, render_tunna

Renderer = Callable[[RulesDocument, BuildSettings, list], Union[str, bytes]]


@dataclass(frozen=True)
class Target:
    name: str
    file_name: str
    render: Renderer


TARGETS: dict[str, Target] = {
    target.name: target
    for target in (
        Target("shadowrocket", f"{CONFIGS_DIR}/shadowrocket.conf", render_shadowrocket),
        Target("loon", f"{CONFIGS_DIR}/loon.conf", render_loon),
        Target("stash", f"{CONFIGS_DIR}/stash.yaml", render_stash),
        Target("tunna", f"{CONFIGS_DIR}/tunna.yaml", render_tunna),
        Target("mobileconfig-dns", f"{PROFILES_DIR}/dns.mobileconfig", render_dns_profile),
        Target(
            "mobileconfig",
            f"{PROFILES_DIR}/shadowrocket.mobileconfig",
            render_client_profile,
        ),
    )
}


def render_target(target: Target, doc: RulesDocument, settings: BuildSettings) -> tuple[Artifact, list[str]]:
    warnings: list[str] = []
    content = target.render(doc, settings, warnings)
    if isinstance(content, str):
        content = content.encode("utf-8")
    return Artifact(target=target.name, file_name=target.file_name, content=content), warnings


def render_targets(doc: RulesDocument, settings: BuildSettings) -> RenderReport:
    """依次渲染所选目标。

    单个目标抛出 `RenderError` 只记录失败，其余目标继续渲染；是否整体失败由调用方决定。
    """

    report = RenderReport()
    for name in settings.targets:
        target = TARGETS[name]
        try:
            artifact, warnings = render_target(target, doc, settings)
        except RenderError as exc:
            report.failures[name] = str(exc)
            if settings.debug:
                report.failures[name] += "\n" + traceback.format_exc()
            continue
        report.artifacts.append(artifact)
        report.warnings.extend(f"[{name}] {item}" for item in dedupe_keep_order(warnings))
    return report
