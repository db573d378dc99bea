"""INI 风格文本配置渲染：Shadowrocket / Loon。"""

from __future__ import annotations

from .constants import SCRIPT_PATTERN, SCRIPT_TAG
from .convert import (
    annotation_lines,
    collect_rule_lines,
    derive_uuid,
    effective_groups,
    emitted_proxies,
    loader_script_url,
    proxy_uuid,
)
from .models import BuildSettings, Proxy, RulesDocument


def finish_lines(lines: list[str], settings: BuildSettings) -> str:
    """统一收尾：`--minify` 去掉空行与注释，末尾保留换行。"""

    if settings.minify:
        lines = [line for line in lines if line and not line.startswith("#")]
    return "\n".join(lines).rstrip("\n") + "\n"


def shadowrocket_proxy_line(proxy: Proxy) -> str:
    """Shadowrocket 代理行，例如 `S1 = socks5, 1.2.3.4, 1080, u, p`。"""

    parts = [proxy.type, proxy.host, str(proxy.port)]
    if proxy.type in {"socks5", "http", "https"}:
        # 用户名与密码是位置参数；只有密码时用户名留空占位，末尾不留空字段。
        if proxy.password:
            parts.extend([proxy.user or "", proxy.password])
        elif proxy.user:
            parts.append(proxy.user)
    elif proxy.type == "ss":
        parts.extend([f"encrypt-method={proxy.cipher}", f"password={proxy.password}"])
    elif proxy.type in {"vmess", "vless"}:
        parts.append(f"username={proxy_uuid(proxy)}")
    elif proxy.type == "trojan":
        parts.append(f"password={proxy.password}")

    if proxy.tls:
        parts.append("tls=true")
    if proxy.ws:
        parts.extend(["ws=true", f"ws-path={proxy.ws_path or '/'}"])
    if proxy.servername:
        parts.append(f"peer={proxy.servername}")
    if proxy.skip_cert_verify:
        parts.append("allowInsecure=1")
    if proxy.fast_open:
        parts.append("tfo=1")
    return f"{proxy.name} = {', '.join(parts)}"


def render_shadowrocket(doc: RulesDocument, settings: BuildSettings, warnings: list[str]) -> str:
    """生成 shadowrocket.conf。"""

    client = "shadowrocket"
    lines: list[str] = annotation_lines(settings, client)
    lines.append("[General]")
    lines.append(f"dns-server = {', '.join(settings.dns_servers)}")
    lines.append("ipv6 = false")
    lines.append("")

    proxies = emitted_proxies(doc, client, warnings, settings.strict)
    lines.append("[Proxy]")
    lines.extend(shadowrocket_proxy_line(proxy) for proxy in proxies)
    lines.append("")

    lines.append("[Proxy Group]")
    groups = effective_groups(
        doc, settings.final_group, [proxy.name for proxy in proxies], client, warnings
    )
    for name, members in groups:
        lines.append(f"{name} = select, {', '.join(members)}")
    lines.append("")

    lines.append("[Rule]")
    refs = [rule_set.url for rule_set in doc.external_rule_sets]
    lines.extend(collect_rule_lines(doc, settings, client, warnings, refs, "FINAL"))
    lines.append("")

    script_url = loader_script_url(doc, settings)
    if script_url:
        lines.append("[Script]")
        lines.append(
            f"{SCRIPT_TAG} = type=http-response,pattern={SCRIPT_PATTERN},"
            f"requires-body=1,max-size=0,script-path={script_url}"
        )
        lines.append("")

    if doc.mitm_hostnames:
        lines.append("[MITM]")
        lines.append(f"hostname = {', '.join(doc.mitm_hostnames)}")
        lines.append("")

    return finish_lines(lines, settings)


def loon_proxy_line(proxy: Proxy) -> str:
    """Loon 代理行：位置参数在前，开关参数在后，空值省略。"""

    parts = [proxy.type, proxy.host, str(proxy.port)]
    if proxy.type == "ss":
        parts.extend([proxy.cipher, proxy.password])
    elif proxy.type in {"vmess", "vless"}:
        parts.append(proxy_uuid(proxy))
    elif proxy.type == "trojan":
        parts.append(proxy.password)
    else:
        parts.extend([proxy.user, proxy.password])

    if proxy.tls:
        parts.append("tls=1")
    if proxy.ws:
        parts.append(f"ws={proxy.ws_path or '/'}")
    if proxy.fast_open:
        parts.append("fast-open=1")
    if proxy.servername:
        parts.append(f"sni={proxy.servername}")
    if proxy.skip_cert_verify:
        parts.append("skip-cert-verify=true")
    return f"{proxy.name} = {', '.join(part for part in parts if part)}"


def render_loon(doc: RulesDocument, settings: BuildSettings, warnings: list[str]) -> str:
    """生成 loon.conf。

    MITM 段的 CA 文件名使用派生 UUID；同一组 hostname 多次构建得到同一文件名。
    """

    client = "loon"
    lines: list[str] = annotation_lines(settings, client)
    lines.append("[General]")
    lines.append(f"dns-server = {', '.join(settings.dns_servers)}")
    lines.append("")

    proxies = emitted_proxies(doc, client, warnings, settings.strict)
    lines.append("[Proxy]")
    lines.extend(loon_proxy_line(proxy) for proxy in proxies)
    lines.append("")

    lines.append("[Proxy Group]")
    groups = effective_groups(
        doc, settings.final_group, [proxy.name for proxy in proxies], client, warnings
    )
    for name, members in groups:
        lines.append(f"{name} = select, {', '.join(members)}")
    lines.append("")

    lines.append("[Rule]")
    refs = [rule_set.url for rule_set in doc.external_rule_sets]
    lines.extend(collect_rule_lines(doc, settings, client, warnings, refs, "FINAL", sep=", "))
    lines.append("")

    script_url = loader_script_url(doc, settings)
    if script_url:
        lines.append("[Script]")
        lines.append(
            f"http-response {SCRIPT_PATTERN} script-path={script_url}, "
            f"requires-body=true, tag={SCRIPT_TAG}"
        )
        lines.append("")

    if doc.mitm_hostnames:
        ca_uuid = derive_uuid(settings, "loon-ca", *doc.mitm_hostnames)
        lines.append("[MITM]")
        lines.append("skip-server-cert-check = true")
        lines.append(f"hostname = {', '.join(doc.mitm_hostnames)}")
        lines.append(f"CA = {ca_uuid}.cer")
        lines.append("")

    return finish_lines(lines, settings)
