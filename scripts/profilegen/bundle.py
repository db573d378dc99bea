"""静态包生成：manifest、注入脚本、入口页、目录页与校验和。

这里的函数只负责拼内容，写文件由编排层完成，便于 `--dry` 复用。
"""

from __future__ import annotations

import hashlib
import html
import json
from pathlib import Path
from typing import Iterable

from .constants import (
    CATALOG_PLACEHOLDER,
    INDEX_PLACEHOLDER,
    LOADER_SCRIPT,
    MANIFEST_FILE,
    OBFUSCATED_DIR,
    PAYLOAD_SUFFIX,
    SCRIPTS_DIR,
)
from .models import ManifestEntry


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fp:
        for chunk in iter(lambda: fp.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def list_payload_files(obf_dir: Path) -> list[str]:
    """返回目录下全部 `*.js.b64` 的相对 posix 路径，排序保证构建可复现。"""

    if not obf_dir.is_dir():
        return []
    return sorted(
        path.relative_to(obf_dir).as_posix()
        for path in obf_dir.rglob(f"*{PAYLOAD_SUFFIX}")
        if path.is_file()
    )


def build_manifest(obf_dir: Path) -> list[ManifestEntry]:
    """为每个 payload 生成一条 `{name, size, hash}` 记录，且只包含 payload。"""

    entries: list[ManifestEntry] = []
    for name in list_payload_files(obf_dir):
        path = obf_dir / name
        entries.append(ManifestEntry(name=name, size=path.stat().st_size, hash=sha256_file(path)))
    return entries


def dump_json(data, minify: bool = False) -> str:
    if minify:
        return json.dumps(data, ensure_ascii=False, separators=(",", ":")) + "\n"
    return json.dumps(data, ensure_ascii=False, indent=2) + "\n"


def render_manifest(entries: Iterable[ManifestEntry], minify: bool = False) -> str:
    data = [{"name": entry.name, "size": entry.size, "hash": entry.hash} for entry in entries]
    return dump_json(data, minify)


def render_mitm_loader() -> str:
    """浏览器端加载器：读取 manifest，逐个拉取 payload、base64 解码后注入页面。"""

    return f"""(function () {{
  const base = (document.currentScript && document.currentScript.src || location.href)
    .split('/{SCRIPTS_DIR}/')[0].replace(/\\/$/, '');
  const manifestURL = base + '/{MANIFEST_FILE}';
  const payloadBase = base + '/{OBFUSCATED_DIR}/';

  const inject = (text) => {{
    const node = document.createElement('script');
    node.textContent = text;
    document.documentElement.appendChild(node);
  }};

  fetch(manifestURL, {{ cache: 'no-store' }})
    .then((resp) => resp.json())
    .then(async (entries) => {{
      if (!Array.isArray(entries)) throw new Error('bad manifest');
      for (const entry of entries) {{
        const name = typeof entry === 'string' ? entry : entry.name;
        const resp = await fetch(payloadBase + name, {{ cache: 'no-store' }});
        if (!resp.ok) {{
          console.warn('[MITM] skip', name, resp.status);
          continue;
        }}
        inject(atob((await resp.text()).trim()));
      }}
    }})
    .catch((err) => console.warn('[MITM]', err.message));
}})();
"""


def render_index(payload_names: list[str], template: str | None = None) -> str:
    """入口页：引用 `scripts/mitm-loader.js` 的空壳页面。

    提供模板时把 `__PAYLOADS__` 替换为 payload 名的 JSON 列表。
    """

    if template is not None:
        return template.replace(INDEX_PLACEHOLDER, json.dumps(payload_names, indent=2))
    return "\n".join(
        [
            "<!doctype html>",
            '<html lang="en">',
            "<head>",
            '  <meta charset="utf-8">',
            '  <meta name="referrer" content="no-referrer">',
            '  <meta name="viewport" content="width=device-width, initial-scale=1">',
            "  <title>Loader</title>",
            "</head>",
            "<body>",
            f'  <script src="./{SCRIPTS_DIR}/{LOADER_SCRIPT}"></script>',
            "</body>",
            "</html>",
            "",
        ]
    )


def catalog_items(
    config_files: list[str], payload_names: list[str], qr_files: Iterable[str] = ()
) -> str:
    items: list[str] = []
    for rel in config_files:
        href = html.escape(rel, quote=True)
        items.append(f'<li><a href="./{href}">{html.escape(rel)}</a></li>')
    for name in payload_names:
        href = html.escape(f"{OBFUSCATED_DIR}/{name}", quote=True)
        items.append(f'<li><a href="./{href}">{html.escape(name)}</a></li>')
    for rel in qr_files:
        href = html.escape(rel, quote=True)
        items.append(f'<li><a href="./{href}"><img src="./{href}" alt="{href}"></a></li>')
    return "\n".join(items)


def render_catalog(
    config_files: list[str],
    payload_names: list[str],
    template: str | None = None,
    qr_files: Iterable[str] = (),
) -> str:
    """目录页：列出生成的配置/描述文件与 payload 链接；配置了 base_url 时附二维码。"""

    qr_files = list(qr_files)
    if template is not None:
        return template.replace(
            CATALOG_PLACEHOLDER, catalog_items(config_files, payload_names, qr_files)
        )
    lines = [
        "<!doctype html>",
        '<html lang="en">',
        '<head><meta charset="utf-8"><title>Catalog</title></head>',
        "<body>",
        "<h1>Configs</h1>",
        "<ul>",
        catalog_items(config_files, []),
        "</ul>",
        "<h1>Payloads</h1>",
        "<ul>",
        catalog_items([], payload_names),
        "</ul>",
    ]
    if qr_files:
        lines.extend(["<h1>QR codes</h1>", "<ul>", catalog_items([], [], qr_files), "</ul>"])
    lines.extend(["</body>", "</html>", ""])
    return "\n".join(lines)


def render_checksums(root: Path, rel_paths: Iterable[str]) -> str:
    """`sha256sum` 兼容格式：`<hex>  <相对路径>`。"""

    lines = [f"{sha256_file(root / rel)}  {rel}" for rel in sorted(rel_paths)]
    return "\n".join(lines) + ("\n" if lines else "")
