"""构建主流程。"""

from __future__ import annotations

import os
import shlex
import shutil
import sys
import time
from pathlib import Path
from typing import Callable

import yaml

from .bundle import (
    build_manifest,
    dump_json,
    render_catalog,
    render_checksums,
    render_index,
    render_manifest,
    render_mitm_loader,
)
from .cli import parse_args
from .constants import (
    CATALOG_FILE,
    CHECKSUMS_FILE,
    CONFIGS_DIR,
    EMITTED_JSON_FILE,
    INDEX_FILE,
    LOADER_SCRIPT,
    MANIFEST_FILE,
    OBFUSCATED_DIR,
    PROFILES_DIR,
    QRCODES_DIR,
    SCRIPTS_DIR,
)
from .models import Artifact, BuildSettings, PayloadResult, SourceError
from .obfuscate import (
    ExternalObfuscator,
    Obfuscate,
    discover_payloads,
    find_obfuscator_command,
    obfuscate_payloads,
)
from .qrcodes import render_qrcodes
from .settings import SettingsError, resolve_settings
from .source import load_rules_file, parse_rules_document, validate_rules_document
from .targets import TARGETS, render_targets
from .validate import validate_outputs

TOTAL_STEPS = 6


def step(settings: BuildSettings, index: int, message: str) -> None:
    if settings.verbose:
        print(f"[{index}/{TOTAL_STEPS}] {message}")


def write_file(path: Path, content: str | bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode("utf-8")
    path.write_bytes(content)


def read_template(root: Path, template: str | None) -> str | None:
    if template is None:
        return None
    return (root / template).read_text(encoding="utf-8")


def print_items(prefix: str, title: str, items: list[str]) -> None:
    print(f"{prefix} {title}", file=sys.stderr)
    for item in items:
        print(f"  - {item}", file=sys.stderr)


def resolve_obfuscator(settings: BuildSettings) -> Obfuscate | None:
    command = shlex.split(settings.obfuscator) if settings.obfuscator else find_obfuscator_command()
    if not command:
        return None
    return ExternalObfuscator(command, timeout=settings.obfuscator_timeout)


def confirm(prompt: str, ask: Callable[[str], str] = input) -> bool:
    try:
        answer = ask(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def run(
    settings: BuildSettings,
    root: Path | None = None,
    obfuscate: Obfuscate | None = None,
    ask: Callable[[str], str] = input,
) -> int:
    """按 加载 -> 渲染 -> 混淆 -> 打包 -> 校验 顺序执行一次完整构建。

    遇到缺失输入等致命错误立即返回；单个渲染器或单个 payload 失败不打断其它步骤，
    但最终返回非 0。已写出的文件不会回滚。
    """

    root = (root or Path.cwd()).resolve()
    input_path = root / settings.input_path
    output_dir = root / settings.output_dir

    step(settings, 1, f"加载规则：{input_path}")
    if not input_path.exists():
        print(f"[ERROR] 找不到输入文件: {input_path}", file=sys.stderr)
        return 1
    try:
        index_template = read_template(root, settings.index_template)
        catalog_template = read_template(root, settings.catalog_template)
    except FileNotFoundError as exc:
        print(f"[ERROR] 找不到模板文件: {exc.filename}", file=sys.stderr)
        return 1

    try:
        raw = load_rules_file(input_path)
    except (yaml.YAMLError, ValueError) as exc:
        print(f"[ERROR] 无法解析规则文件: {exc}", file=sys.stderr)
        return 1

    errors, source_warnings = validate_rules_document(raw, extra_groups=(settings.final_group,))
    if errors:
        print_items("[ERROR]", "规则文件结构校验失败：", errors)
        return 1
    try:
        doc, parse_warnings = parse_rules_document(raw, strict=settings.strict)
    except SourceError as exc:
        print(f"[ERROR] strict 模式下存在不合格条目：{exc}", file=sys.stderr)
        return 2
    if settings.strict and source_warnings:
        print_items("[ERROR]", "strict 模式命中 warning，已终止生成：", source_warnings)
        return 2
    all_warnings = [f"[source] {item}" for item in source_warnings + parse_warnings]

    step(settings, 2, f"渲染目标：{', '.join(settings.targets)}")
    report = render_targets(doc, settings)
    artifacts = list(report.artifacts)
    all_warnings.extend(report.warnings)
    if settings.emit_json:
        artifacts.append(
            Artifact(
                target="json",
                file_name=f"{CONFIGS_DIR}/{EMITTED_JSON_FILE}",
                content=dump_json(doc.to_dict(), settings.minify).encode("utf-8"),
            )
        )

    # 二维码只对应客户端配置与描述文件，不含 master-rules.json。
    qr_artifacts = render_qrcodes(
        settings.base_url, [artifact.file_name for artifact in report.artifacts]
    )

    if settings.dry:
        for artifact in artifacts + qr_artifacts:
            print(f"[DRY] {output_dir / artifact.file_name} ({len(artifact.content)} bytes)")
        payload_dirs = [root / item for item in settings.payload_dirs]
        for source, name in discover_payloads(payload_dirs, all_warnings):
            print(f"[DRY] {source} -> {output_dir / OBFUSCATED_DIR / name}")
        return finish(settings, all_warnings, report.failures, [], len(artifacts), 0, output_dir)

    if settings.interactive:
        print(f"将写入 {output_dir}：")
        for artifact in artifacts + qr_artifacts:
            print(f"  - {artifact.file_name}")
        if not confirm("继续写入？[y/N] ", ask):
            print("[INFO] 已取消，未写入任何文件")
            return 0

    # 清掉上次构建的配置，目标改名后不残留旧文件。
    for sub in (CONFIGS_DIR, PROFILES_DIR, QRCODES_DIR):
        shutil.rmtree(output_dir / sub, ignore_errors=True)
    for artifact in artifacts + qr_artifacts:
        write_file(output_dir / artifact.file_name, artifact.content)

    obf_dir = output_dir / OBFUSCATED_DIR
    results: list[PayloadResult] = []
    if settings.skip_obfuscation:
        step(settings, 3, "跳过混淆，沿用现有 payload")
    else:
        step(settings, 3, "混淆 payload")
        payloads = discover_payloads([root / item for item in settings.payload_dirs], all_warnings)
        shutil.rmtree(obf_dir, ignore_errors=True)
        obf_dir.mkdir(parents=True, exist_ok=True)
        if payloads:
            if obfuscate is None:
                obfuscate = resolve_obfuscator(settings)
            if obfuscate is None:
                print("[ERROR] 未找到 javascript-obfuscator（也没有 npx / pnpm）", file=sys.stderr)
                return 1
            if settings.debug and isinstance(obfuscate, ExternalObfuscator):
                print(f"[DEBUG] obfuscator: {obfuscate.fingerprint}")
            cache_dir = root / settings.cache_dir if settings.cache_dir else None
            results = obfuscate_payloads(
                payloads, obf_dir, obfuscate, jobs=settings.max_jobs, cache_dir=cache_dir
            )
            if settings.debug:
                for result in results:
                    state = "cache" if result.cached else ("failed" if result.error else "built")
                    print(f"[DEBUG] {result.name}: {state}")
        elif settings.verbose:
            print("[INFO] 未发现任何 payload")

    step(settings, 4, "生成 manifest / loader / index / catalog")
    entries = build_manifest(obf_dir)
    payload_names = [entry.name for entry in entries]
    config_files = [artifact.file_name for artifact in artifacts]
    qr_files = [artifact.file_name for artifact in qr_artifacts]
    write_file(output_dir / MANIFEST_FILE, render_manifest(entries, settings.minify))
    write_file(output_dir / SCRIPTS_DIR / LOADER_SCRIPT, render_mitm_loader())
    write_file(output_dir / INDEX_FILE, render_index(payload_names, index_template))
    write_file(
        output_dir / CATALOG_FILE,
        render_catalog(config_files, payload_names, catalog_template, qr_files),
    )

    step(settings, 5, "写入校验和")
    checksum_paths = config_files + qr_files
    checksum_paths += [f"{OBFUSCATED_DIR}/{name}" for name in payload_names]
    write_file(output_dir / CHECKSUMS_FILE, render_checksums(output_dir, checksum_paths))

    if settings.skip_validation:
        step(settings, 6, "跳过产物校验")
    else:
        step(settings, 6, "校验产物")
        validation_errors = validate_outputs(output_dir, config_files + qr_files)
        if validation_errors:
            print_items("[ERROR]", "产物校验失败：", validation_errors)
            return 1

    return finish(
        settings, all_warnings, report.failures, results, len(artifacts), len(entries), output_dir
    )


def finish(
    settings: BuildSettings,
    warnings: list[str],
    render_failures: dict[str, str],
    results: list[PayloadResult],
    artifact_count: int,
    payload_count: int,
    output_dir: Path,
) -> int:
    """输出汇总；任一渲染器或 payload 失败时返回 1。"""

    if warnings:
        print_items("[WARN]", "需要人工关注的条目：", warnings)

    failures = [f"{name}: {reason}" for name, reason in render_failures.items()]
    failures.extend(f"{result.name}: {result.error}" for result in results if result.error)
    if failures:
        print_items("[ERROR]", "以下目标生成失败：", failures)
        return 1

    verb = "将生成" if settings.dry else "已生成"
    print(f"[OK] {verb} {artifact_count} 个配置、{payload_count} 个 payload 到: {output_dir}")
    return 0


def snapshot_inputs(settings: BuildSettings, root: Path) -> dict[str, tuple[int, int]]:
    """记录规则文件、模板与 payload 目录下文件的 (mtime_ns, size)。"""

    paths = [root / settings.input_path]
    for template in (settings.index_template, settings.catalog_template):
        if template:
            paths.append(root / template)
    for item in settings.payload_dirs:
        directory = root / item
        if directory.is_dir():
            paths.extend(path for path in directory.rglob("*.js") if path.is_file())

    state: dict[str, tuple[int, int]] = {}
    for path in paths:
        try:
            stat = path.stat()
        except FileNotFoundError:
            continue
        state[str(path)] = (stat.st_mtime_ns, stat.st_size)
    return state


def watch(
    settings: BuildSettings,
    root: Path | None = None,
    obfuscate: Obfuscate | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """先构建一次，然后轮询输入文件，变化时重新构建；Ctrl-C 退出并返回最近一次的退出码。"""

    root = (root or Path.cwd()).resolve()
    code = run(settings, root, obfuscate)
    state = snapshot_inputs(settings, root)
    print(f"[INFO] 正在监视输入变化（每 {settings.watch_interval:g}s），Ctrl-C 退出")
    try:
        while True:
            sleep(settings.watch_interval)
            current = snapshot_inputs(settings, root)
            if current == state:
                continue
            state = current
            print("[INFO] 检测到输入变化，重新构建")
            code = run(settings, root, obfuscate)
    except KeyboardInterrupt:
        print("[INFO] 已停止监视")
    return code


def main(argv: list[str] | None = None) -> int:
    """命令行入口：解析参数与环境变量后执行构建。"""

    args = parse_args(argv)
    try:
        settings = resolve_settings(args, os.environ, tuple(TARGETS))
    except SettingsError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
    if settings.watch:
        return watch(settings)
    return run(settings)
