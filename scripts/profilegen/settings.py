"""构建设置：默认值 < 环境变量 < 命令行参数。"""

from __future__ import annotations

import argparse
import os
from typing import Mapping

from .constants import (
    DEFAULT_CACHE_DIR,
    DEFAULT_DNS,
    DEFAULT_FINAL_GROUP,
    DEFAULT_INPUT,
    DEFAULT_MOBILECONFIG_GROUP,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PAYLOAD_DIRS,
    DEFAULT_REJECT_POLICY,
    DEFAULT_WATCH_INTERVAL,
)
from .models import BuildSettings


class SettingsError(ValueError):
    """环境变量或参数取值无效。"""


def split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _first(*values):
    for value in values:
        if value is not None and value != "":
            return value
    return None


def resolve_max_jobs(cli_value: int | None, environ: Mapping[str, str]) -> int:
    if cli_value is not None:
        jobs = cli_value
    elif environ.get("BUILD_MAX_JOBS"):
        raw = environ["BUILD_MAX_JOBS"]
        try:
            jobs = int(raw)
        except ValueError as exc:
            raise SettingsError(f"BUILD_MAX_JOBS 必须是整数，实际为 `{raw}`") from exc
    else:
        jobs = os.cpu_count() or 1
    if jobs < 1:
        raise SettingsError(f"并行数必须 >= 1，实际为 {jobs}")
    return jobs


def resolve_watch_interval(value: float | None) -> float:
    if value is None:
        return DEFAULT_WATCH_INTERVAL
    if value <= 0:
        raise SettingsError(f"--watch-interval 必须大于 0，实际为 {value}")
    return value


def resolve_settings(
    args: argparse.Namespace,
    environ: Mapping[str, str] | None = None,
    known_targets: tuple[str, ...] = (),
) -> BuildSettings:
    """把命令行参数与环境变量合并为不可变的 `BuildSettings`。

    只在启动时调用一次；渲染器不再直接读取环境变量。
    """

    env = os.environ if environ is None else environ

    dns_raw = _first(args.dns, env.get("DNS_SERVER"), DEFAULT_DNS)
    dns_servers = split_csv(dns_raw)
    if not dns_servers:
        raise SettingsError("DNS 服务器列表为空")

    if args.targets:
        targets = split_csv(args.targets)
        unknown = [name for name in targets if name not in known_targets]
        if unknown:
            raise SettingsError(
                f"未知目标：{', '.join(unknown)}（可选：{', '.join(known_targets)}）"
            )
    else:
        targets = tuple(known_targets)

    commit = env.get("GIT_COMMIT", "").strip()
    build_tag = _first(args.build_tag, commit[:7]) or ""

    return BuildSettings(
        input_path=_first(args.input, env.get("MASTER_RULES"), DEFAULT_INPUT),
        output_dir=_first(args.output, DEFAULT_OUTPUT_DIR),
        dns_servers=dns_servers,
        final_group=_first(args.final_group, DEFAULT_FINAL_GROUP),
        mobileconfig_group=_first(
            args.mobileconfig_group,
            env.get("MOBILECONFIG_GROUP"),
            env.get("PREFER_GROUP"),
            DEFAULT_MOBILECONFIG_GROUP,
        ),
        reject_policy=_first(args.reject_policy, DEFAULT_REJECT_POLICY),
        max_jobs=resolve_max_jobs(args.jobs, env),
        targets=targets,
        payload_dirs=tuple(args.payload_dir) if args.payload_dir else DEFAULT_PAYLOAD_DIRS,
        cache_dir=None if args.no_cache else _first(args.cache_dir, DEFAULT_CACHE_DIR),
        build_tag=build_tag,
        base_url=(_first(args.base_url, env.get("BASE_URL")) or "").rstrip("/"),
        obfuscator=args.obfuscator,
        obfuscator_timeout=args.obfuscator_timeout,
        index_template=args.index_template,
        catalog_template=args.catalog_template,
        strict=args.strict,
        annotate=args.annotate,
        minify=args.minify,
        emit_json=args.emit_json,
        dry=args.dry,
        random_uuid=args.random_uuid,
        verbose=args.verbose or args.debug,
        debug=args.debug,
        skip_obfuscation=args.skip_obfuscation,
        skip_validation=args.skip_validation,
        watch=args.watch,
        watch_interval=resolve_watch_interval(args.watch_interval),
        interactive=args.interactive,
    )
