"""命令行参数解析。"""

from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="从 master-rules.yaml 生成多客户端配置与混淆脚本静态包"
    )
    parser.add_argument(
        "--input",
        default=None,
        help="规则源文件（默认：$MASTER_RULES 或 configs/master-rules.yaml）",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="静态包输出目录（默认：apps/loader/public）",
    )
    parser.add_argument(
        "--dns",
        default=None,
        help="DNS 服务器，逗号分隔（默认：$DNS_SERVER 或 1.1.1.1）",
    )
    parser.add_argument(
        "--final-group",
        default=None,
        help="兜底规则指向的策略组（默认：Proxy；未声明时自动合成）",
    )
    parser.add_argument(
        "--mobileconfig-group",
        default=None,
        help="描述文件使用的策略组（默认：$MOBILECONFIG_GROUP / $PREFER_GROUP 或 US）",
    )
    parser.add_argument(
        "--reject-policy",
        default=None,
        help="block_domains 使用的拦截策略（默认：REJECT）",
    )
    parser.add_argument(
        "--targets",
        default=None,
        help="只生成指定目标，逗号分隔（默认：全部）",
    )
    parser.add_argument(
        "--payload-dir",
        action="append",
        default=None,
        help="待混淆脚本目录，可重复（默认：src-scripts、scripts/payloads、payloads）",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=None,
        help="并行混淆的 worker 数（默认：$BUILD_MAX_JOBS 或 CPU 数）",
    )
    parser.add_argument(
        "--cache-dir",
        default=None,
        help="混淆结果缓存目录（默认：.build/obfuscation-cache）",
    )
    parser.add_argument("--no-cache", action="store_true", help="禁用混淆缓存")
    parser.add_argument(
        "--obfuscator",
        default=None,
        help="混淆器命令（默认：自动查找 javascript-obfuscator / npx / pnpm dlx）",
    )
    parser.add_argument(
        "--obfuscator-timeout",
        type=float,
        default=None,
        help="单个 payload 混淆的超时秒数（默认：不限）",
    )
    parser.add_argument("--base-url", default=None, help="静态包公开地址（默认：$BASE_URL）")
    parser.add_argument("--build-tag", default=None, help="构建标记（默认：$GIT_COMMIT 前 7 位）")
    parser.add_argument("--index-template", default=None, help="index.html 模板文件")
    parser.add_argument("--catalog-template", default=None, help="catalog.html 模板文件")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="严格模式：不合格条目直接报错，而不是告警跳过",
    )
    parser.add_argument("--annotate", action="store_true", help="在文本配置头部写入来源注释")
    parser.add_argument("--minify", action="store_true", help="JSON 紧凑输出，文本配置去掉空行")
    parser.add_argument(
        "--emit-json",
        action="store_true",
        help="额外输出规范化后的 configs/master-rules.json",
    )
    parser.add_argument("--dry", action="store_true", help="只渲染并列出产物，不写文件")
    parser.add_argument(
        "--random-uuid",
        action="store_true",
        help="描述文件/CA 使用随机 UUID（默认按内容派生，保证可复现）",
    )
    parser.add_argument("--verbose", action="store_true", help="输出每个步骤")
    parser.add_argument("--debug", action="store_true", help="输出命令、缓存命中与异常堆栈")
    parser.add_argument("--skip-obfuscation", action="store_true", help="跳过混淆步骤")
    parser.add_argument("--skip-validation", action="store_true", help="跳过产物校验")
    parser.add_argument(
        "--watch",
        action="store_true",
        help="构建后持续监视规则文件、模板与 payload 目录，变化时重新构建（Ctrl-C 退出）",
    )
    parser.add_argument(
        "--watch-interval",
        type=float,
        default=None,
        help="--watch 的轮询间隔秒数（默认：1）",
    )
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="渲染完成后列出将写入的产物，确认后再写文件",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """解析命令行参数。

    所有选项默认 None，交给 `settings.resolve_settings` 再叠加环境变量与默认值。
    """

    return build_parser().parse_args(argv)
