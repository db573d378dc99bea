"""配置生成器使用的静态常量。"""

from __future__ import annotations

DEFAULT_INPUT = "configs/master-rules.yaml"
DEFAULT_OUTPUT_DIR = "apps/loader/public"
DEFAULT_DNS = "1.1.1.1"
DEFAULT_FINAL_GROUP = "Proxy"
DEFAULT_MOBILECONFIG_GROUP = "US"
DEFAULT_REJECT_POLICY = "REJECT"
DEFAULT_PAYLOAD_DIRS = ("src-scripts", "scripts/payloads", "payloads")
DEFAULT_CACHE_DIR = ".build/obfuscation-cache"
DEFAULT_REGION = "default"
DEFAULT_WATCH_INTERVAL = 1.0

# 输出目录布局；bundle/validate 都按这里的相对路径取文件。
CONFIGS_DIR = "configs"
PROFILES_DIR = "profiles"
OBFUSCATED_DIR = "obfuscated"
QRCODES_DIR = "qrcodes"
SCRIPTS_DIR = "scripts"
LOADER_SCRIPT = "mitm-loader.js"
MANIFEST_FILE = "manifest.json"
INDEX_FILE = "index.html"
CATALOG_FILE = "catalog.html"
CHECKSUMS_FILE = "checksums.txt"
EMITTED_JSON_FILE = "master-rules.json"

PAYLOAD_SUFFIX = ".js.b64"

INDEX_PLACEHOLDER = "__PAYLOADS__"
CATALOG_PLACEHOLDER = "__CATALOG_LIST__"

# 客户端内置策略，规则/分组引用这些名字时不要求在 groups 中声明。
BUILTIN_POLICIES = {"DIRECT", "REJECT", "REJECT-DROP", "REJECT-TINYGIF", "REJECT-NO-DROP"}

PROXY_TYPE_ALIASES = {
    "socks": "socks5",
    "shadowsocks": "ss",
}

# 源文件里字段别名 -> 规范字段名；历史版本的 master-rules.yaml 两种写法都有。
PROXY_FIELD_ALIASES = {
    "server": "host",
    "username": "user",
    "password": "pass",
    "sni": "servername",
    "ws-path": "ws_path",
    "skip-cert-verify": "skip_cert_verify",
    "fast-open": "fast_open",
}

# 源文件里布尔开关可能被写成字符串。
TRUE_STRINGS = {"true", "yes", "on", "1"}
FALSE_STRINGS = {"false", "no", "off", "0", ""}

KNOWN_PROXY_TYPES = ("socks5", "http", "https", "ss", "vmess", "vless", "trojan")

KNOWN_RULE_TYPES = (
    "DOMAIN",
    "DOMAIN-SUFFIX",
    "DOMAIN-KEYWORD",
    "DOMAIN-SET",
    "IP-CIDR",
    "IP-CIDR6",
    "SRC-IP-CIDR",
    "GEOIP",
    "IP-ASN",
    "DST-PORT",
    "URL-REGEX",
    "USER-AGENT",
    "PROCESS-NAME",
)

# 各客户端实际可解析的规则类型；未列出的类型会被告警并跳过。
CLIENT_RULE_TYPES = {
    "shadowrocket": set(KNOWN_RULE_TYPES) - {"SRC-IP-CIDR", "PROCESS-NAME"},
    "loon": {
        "DOMAIN",
        "DOMAIN-SUFFIX",
        "DOMAIN-KEYWORD",
        "IP-CIDR",
        "IP-CIDR6",
        "GEOIP",
        "IP-ASN",
        "DST-PORT",
        "URL-REGEX",
        "USER-AGENT",
    },
    "stash": {
        "DOMAIN",
        "DOMAIN-SUFFIX",
        "DOMAIN-KEYWORD",
        "IP-CIDR",
        "IP-CIDR6",
        "SRC-IP-CIDR",
        "GEOIP",
        "IP-ASN",
        "DST-PORT",
        "URL-REGEX",
        "USER-AGENT",
        "PROCESS-NAME",
    },
    "tunna": {"DOMAIN", "DOMAIN-SUFFIX", "DOMAIN-KEYWORD", "IP-CIDR", "IP-CIDR6", "GEOIP"},
}

# no-resolve 只对 IP 类规则有意义。
NO_RESOLVE_RULE_TYPES = {"IP-CIDR", "IP-CIDR6", "SRC-IP-CIDR", "GEOIP", "IP-ASN"}

CLIENT_PROXY_TYPES = {
    "shadowrocket": set(KNOWN_PROXY_TYPES),
    "loon": {"socks5", "http", "https", "ss", "vmess", "vless", "trojan"},
    "stash": {"socks5", "http", "ss", "vmess", "vless", "trojan"},
    "tunna": {"socks5", "http", "vmess", "vless", "trojan"},
}

RULE_PROVIDER_INTERVAL = 86400

STASH_DNS_FALLBACK = [
    "https://dns.cloudflare.com/dns-query",
    "https://dns.google/dns-query",
]

# 出现在 loader 注入规则里的匹配模式；所有客户端共用。
SCRIPT_PATTERN = "^https?://.+"
SCRIPT_TAG = "mitm-loader"

OBFUSCATOR_BINARY = "javascript-obfuscator"
OBFUSCATOR_OPTIONS = (
    "--compact",
    "true",
    "--self-defending",
    "true",
    "--control-flow-flattening",
    "true",
    "--string-array",
    "true",
)

# uuid5 命名空间：固定值保证同一输入多次构建得到同一 UUID。
UUID_NAMESPACE = "6f1c7a52-3c1e-4c55-9b7e-2f0d6f5b9a10"
PROFILE_IDENTIFIER_PREFIX = "com.profilegen"
