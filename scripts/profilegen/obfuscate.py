"""payload 混淆：调用外部混淆器、base64 编码、内容寻址缓存与并行执行。

混淆器本身是注入的依赖（`Callable[[str], bytes]`），编排逻辑不关心具体工具，
测试里可以直接传入普通函数。
"""

from __future__ import annotations

import base64
import hashlib
import os
import shutil
import subprocess
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, Sequence

from .constants import OBFUSCATOR_BINARY, OBFUSCATOR_OPTIONS, PAYLOAD_SUFFIX
from .models import PayloadResult

Obfuscate = Callable[[str], bytes]


class ObfuscationError(RuntimeError):
    """外部混淆器退出码非 0、超时或输出为空。"""


def find_obfuscator_command() -> list[str] | None:
    """按优先级查找可用的混淆器命令；都不存在时返回 None。"""

    if shutil.which(OBFUSCATOR_BINARY):
        return [OBFUSCATOR_BINARY]
    if shutil.which("npx"):
        return ["npx", "--yes", OBFUSCATOR_BINARY]
    if shutil.which("pnpm"):
        return ["pnpm", "dlx", OBFUSCATOR_BINARY]
    return None


class ExternalObfuscator:
    """通过临时文件调用 `javascript-obfuscator` CLI。"""

    def __init__(
        self,
        command: Sequence[str],
        options: Sequence[str] = OBFUSCATOR_OPTIONS,
        timeout: float | None = None,
    ) -> None:
        self.command = list(command)
        self.options = list(options)
        self.timeout = timeout

    @property
    def fingerprint(self) -> str:
        return " ".join([*self.command, *self.options])

    def build_command(self, source_path: Path, output_path: Path) -> list[str]:
        return [*self.command, str(source_path), "--output", str(output_path), *self.options]

    def __call__(self, source: str) -> bytes:
        with tempfile.TemporaryDirectory(prefix="profilegen-") as tmp:
            source_path = Path(tmp) / "input.js"
            output_path = Path(tmp) / "output.js"
            source_path.write_text(source, encoding="utf-8")
            try:
                result = subprocess.run(
                    self.build_command(source_path, output_path),
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired as exc:
                raise ObfuscationError(f"混淆超时（{self.timeout}s）") from exc
            except FileNotFoundError as exc:
                raise ObfuscationError(f"找不到混淆器命令：{self.command[0]}") from exc

            if result.returncode != 0:
                detail = (result.stderr or result.stdout).strip().splitlines()
                reason = detail[-1] if detail else "无输出"
                raise ObfuscationError(f"混淆器退出码 {result.returncode}：{reason}")
            if not output_path.exists() or output_path.stat().st_size == 0:
                raise ObfuscationError("混淆器未产出内容")
            return output_path.read_bytes()


def obfuscator_fingerprint(obfuscate: Obfuscate) -> str:
    fingerprint = getattr(obfuscate, "fingerprint", None)
    if fingerprint:
        return str(fingerprint)
    return getattr(obfuscate, "__qualname__", type(obfuscate).__name__)


def discover_payloads(dirs: Iterable[Path], warnings: list[str]) -> list[tuple[Path, str]]:
    """扫描各目录下的 `*.js`，返回 (源文件, 产物名)。

    产物名为相对所在目录的 posix 路径加 `.b64`；多个目录出现同名文件时保留先出现的。
    """

    found: list[tuple[Path, str]] = []
    owners: dict[str, Path] = {}
    for directory in dirs:
        if not directory.is_dir():
            continue
        for path in sorted(directory.rglob("*.js")):
            if not path.is_file():
                continue
            name = path.relative_to(directory).as_posix() + ".b64"
            if name in owners:
                warnings.append(f"payload `{name}` 已由 {owners[name]} 提供，忽略 {path}")
                continue
            owners[name] = path
            found.append((path, name))
    return found


def encode_payload(data: bytes) -> bytes:
    """base64 编码，不换行。"""

    return base64.b64encode(data)


def cache_key(fingerprint: str, source: bytes) -> str:
    digest = hashlib.sha256()
    digest.update(fingerprint.encode("utf-8"))
    digest.update(b"\0")
    digest.update(source)
    return digest.hexdigest()


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
    with os.fdopen(fd, "wb") as fp:
        fp.write(data)
    os.replace(tmp_name, path)


def obfuscate_one(
    source_path: Path,
    name: str,
    out_dir: Path,
    obfuscate: Obfuscate,
    fingerprint: str,
    cache_dir: Path | None = None,
) -> PayloadResult:
    """处理单个 payload；失败只记录在结果里，不影响其它 payload。"""

    output_path = out_dir / name
    result = PayloadResult(source=str(source_path), name=name)
    try:
        raw = source_path.read_bytes()
        cached_path = None
        if cache_dir is not None:
            cached_path = cache_dir / f"{cache_key(fingerprint, raw)}{PAYLOAD_SUFFIX}"
            if cached_path.is_file() and cached_path.stat().st_size > 0:
                output_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(cached_path, output_path)
                result.output = str(output_path)
                result.cached = True
                return result

        obfuscated = obfuscate(raw.decode("utf-8"))
        if not obfuscated:
            raise ObfuscationError("混淆器未产出内容")
        encoded = encode_payload(obfuscated)
        if cached_path is not None:
            _atomic_write(cached_path, encoded)
        _atomic_write(output_path, encoded)
        result.output = str(output_path)
    except (ObfuscationError, OSError, UnicodeDecodeError) as exc:
        result.error = str(exc)
    return result


def obfuscate_payloads(
    payloads: Sequence[tuple[Path, str]],
    out_dir: Path,
    obfuscate: Obfuscate,
    jobs: int = 1,
    cache_dir: Path | None = None,
) -> list[PayloadResult]:
    """按 `jobs` 个 worker 并行处理所有 payload，结果保持发现顺序。

    每个 worker 只写自己的输出文件；中途失败不会回滚已写出的文件。
    """

    if not payloads:
        return []
    fingerprint = obfuscator_fingerprint(obfuscate)
    out_dir.mkdir(parents=True, exist_ok=True)
    with ThreadPoolExecutor(max_workers=max(1, jobs)) as executor:
        futures = [
            executor.submit(obfuscate_one, path, name, out_dir, obfuscate, fingerprint, cache_dir)
            for path, name in payloads
        ]
        return [future.result() for future in futures]
