"""中文校对服务のルートパッケージ。"""

from __future__ import annotations

__version__ = "0.1.0"
