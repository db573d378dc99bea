"""为已发布的配置 URL 生成二维码 PNG，便于手机扫码导入。"""

from __future__ import annotations

import io
import posixpath
from typing import Iterable

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from .constants import QRCODES_DIR
from .models import Artifact


def config_url(base_url: str, rel: str) -> str:
    return f"{base_url.rstrip('/')}/{rel}"


def render_qr_png(data: str) -> bytes:
    """高纠错、1 格边距、每格 6 像素。"""

    code = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=6, border=1)
    code.add_data(data)
    code.make(fit=True)
    buffer = io.BytesIO()
    code.make_image().save(buffer)
    return buffer.getvalue()


def qr_file_name(rel: str) -> str:
    return f"{QRCODES_DIR}/{posixpath.basename(rel)}.png"


def render_qrcodes(base_url: str, config_files: Iterable[str]) -> list[Artifact]:
    """每个配置/描述文件一张二维码：`qrcodes/<文件名>.png` 编码 `<base_url>/<相对路径>`。

    未配置 base_url 时没有可扫描的公开地址，返回空列表。
    """

    if not base_url:
        return []
    artifacts: list[Artifact] = []
    for rel in config_files:
        artifacts.append(
            Artifact(
                target="qrcode",
                file_name=qr_file_name(rel),
                content=render_qr_png(config_url(base_url, rel)),
            )
        )
    return artifacts
