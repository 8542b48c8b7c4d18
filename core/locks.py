"""
並發控制工具

提供 Database-level 的鎖定機制，防止競態條件（Race Condition）

主要使用 PostgreSQL 的 SELECT ... FOR UPDATE 來實現悲觀鎖（Pessimistic Locking），
並搭配 populate_existing() 強制從資料庫重新讀取，避免 session 中殘留舊版本。
Match 另外有 state_version 樂觀鎖，若仍有舊版本寫入會拋出 StaleDataError。

SQLite 不支援 FOR UPDATE（會被忽略），但 SQLite 本身一次只允許一個 writer。
"""
from typing import Iterable

from sqlalchemy.orm import Session, Query

from models import Agent, Match, QueueEntry


def with_match_lock(match_id: str, db: Session) -> Query:
    """
    鎖定一個 Match（行級鎖）

    使用場景：
    - 提交任何階段動作時
    - 逾時檢查時（防止與正常推進同時結算）
    - 結算時（防止重複計算）

    範例：
        match = with_match_lock(match_id, db).first()
        if match and match.winner is None:
            # 結算...

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）
    """
    return db.query(Match).filter(
        Match.id == match_id
    ).populate_existing().with_for_update(nowait=False)


def with_agent_lock(agent_id: str, db: Session) -> Query:
    """
    鎖定一個 Agent（行級鎖）

    使用場景：
    - 配對時：同一個 agent 的並發 request_match 會被序列化
    - 套用積分時
    """
    return db.query(Agent).filter(
        Agent.id == agent_id
    ).populate_existing().with_for_update(nowait=False)


def lock_agents(agent_ids: Iterable[str], db: Session) -> dict:
    """
    依 id 排序後一次鎖定多個 Agent，避免兩個結算互相等待造成 deadlock

    返回：
        {agent_id: Agent}，不存在的 agent 不會出現在 dict 中
    """
    ids = sorted(set(agent_ids))
    # populate_existing 會覆蓋未 flush 的修改，先寫出
    db.flush()
    agents = db.query(Agent).filter(
        Agent.id.in_(ids)
    ).order_by(Agent.id).populate_existing().with_for_update(nowait=False).all()
    return {agent.id: agent for agent in agents}


def with_queue_entry_lock(agent_id: str, db: Session) -> Query:
    """
    鎖定 agent 自己的佇列項目（不略過：等到其他配對 transaction 結束）

    持有這個鎖時，其他請求的 lock_waiting_opponents 會略過這一筆。
    """
    return db.query(QueueEntry).filter(
        QueueEntry.agent_id == agent_id
    ).populate_existing().with_for_update(nowait=False)


def lock_waiting_opponents(agent_id: str, db: Session) -> Query:
    """
    依加入時間（舊到新）鎖定其他 agent 的佇列項目

    skip_locked=True：正在被另一個配對 transaction 處理的項目直接略過。
    SQLite 會忽略這個鎖，呼叫者仍須以條件式刪除確認真的取得項目。
    """
    return db.query(QueueEntry).filter(
        QueueEntry.agent_id != agent_id
    ).order_by(
        QueueEntry.joined_at.asc(), QueueEntry.id.asc()
    ).with_for_update(skip_locked=True)
