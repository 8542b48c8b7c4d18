"""
時間工具

所有時間戳記一律使用 naive UTC datetime，避免 SQLite 讀回時遺失時區資訊後
與 aware datetime 比較出錯。
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
