#!/usr/bin/env python3
"""根据 configs/master-rules.yaml 生成多客户端配置与混淆脚本静态包。"""

from __future__ import annotations

import sys
from pathlib import Path

SCRIPTS_DIR = Path(__file__).resolve().parent
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from profilegen.app import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main())
