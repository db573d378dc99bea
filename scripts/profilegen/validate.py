"""产物校验：任何必需文件为空或结构不对都视为构建失败。"""

from __future__ import annotations

import json
import plistlib
from pathlib import Path
from typing import Iterable

import yaml

from .constants import INDEX_FILE, MANIFEST_FILE, OBFUSCATED_DIR


def check_non_empty(path: Path, errors: list[str], label: str = "文件缺失或为空") -> bool:
    if not path.is_file() or path.stat().st_size == 0:
        errors.append(f"{label}: {path}")
        return False
    return True


def check_text_config(path: Path, errors: list[str]) -> None:
    text = path.read_text(encoding="utf-8")
    if "[Rule]" not in text:
        errors.append(f"{path.name} 缺少 [Rule] 段")


def check_yaml_config(path: Path, errors: list[str]) -> None:
    try:
        doc = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        errors.append(f"{path.name} 不是合法 YAML：{exc}")
        return
    if not isinstance(doc, dict):
        errors.append(f"{path.name} 根节点不是映射")
        return
    for key in ("proxies", "proxy-groups", "rules"):
        if not isinstance(doc.get(key), list):
            errors.append(f"{path.name} 缺少列表字段 `{key}`")


def check_mobileconfig(path: Path, errors: list[str]) -> None:
    try:
        with path.open("rb") as fp:
            profile = plistlib.load(fp)
    except (plistlib.InvalidFileException, ValueError) as exc:
        errors.append(f"{path.name} 不是合法 plist：{exc}")
        return
    content = profile.get("PayloadContent") if isinstance(profile, dict) else None
    if not isinstance(content, list) or not content:
        errors.append(f"{path.name} 缺少 PayloadContent")
        return
    for payload in content:
        dns = payload.get("DNSSettings")
        if dns is not None and not (dns.get("ServerAddresses") or dns.get("ServerURL")):
            errors.append(f"{path.name} 的 DNSSettings 没有任何解析器")


def check_manifest(output_dir: Path, errors: list[str]) -> None:
    path = output_dir / MANIFEST_FILE
    if not check_non_empty(path, errors, "manifest 缺失"):
        return
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        errors.append("manifest.json 不是合法 JSON")
        return
    if not isinstance(entries, list):
        errors.append("manifest.json 不是数组")
        return
    obf_dir = output_dir / OBFUSCATED_DIR
    for entry in entries:
        name = entry.get("name") if isinstance(entry, dict) else entry
        if not isinstance(name, str) or not name:
            errors.append(f"manifest 条目无效：{entry!r}")
            continue
        check_non_empty(obf_dir / name, errors, "payload 缺失或为空")


def scan_zero_byte(directory: Path, errors: list[str]) -> None:
    if not directory.is_dir():
        return
    for path in sorted(directory.rglob("*")):
        if path.is_file() and path.stat().st_size == 0:
            errors.append(f"零字节文件: {path}")


def validate_outputs(output_dir: Path, artifact_files: Iterable[str]) -> list[str]:
    """按文件类型检查每个产物，并检查 manifest、入口页与混淆目录。"""

    errors: list[str] = []
    for rel in artifact_files:
        path = output_dir / rel
        if not check_non_empty(path, errors):
            continue
        if path.suffix == ".conf":
            check_text_config(path, errors)
        elif path.suffix in {".yaml", ".yml"}:
            check_yaml_config(path, errors)
        elif path.suffix == ".mobileconfig":
            check_mobileconfig(path, errors)

    check_manifest(output_dir, errors)
    check_non_empty(output_dir / INDEX_FILE, errors)
    scan_zero_byte(output_dir / OBFUSCATED_DIR, errors)
    return errors
