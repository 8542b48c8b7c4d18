"""
Queue Manager：配對佇列

職責：
1. request_match：回傳既有對局、與佇列中最早的對手配對，或加入佇列
2. 查詢佇列長度

公平性：
- 純 FIFO（依 joined_at），不做積分區間配對

並發：
- 呼叫者的 Agent row 先上鎖：同一個 agent 的並發請求會被序列化
- 呼叫者自己的佇列項目以 FOR UPDATE 鎖定，配對中的項目不會被別人取走
- 佇列項目一律以「條件式刪除」取得：DELETE ... WHERE id = ? 真的刪到一筆才算取得，
  兩個並發請求不會消耗同一筆佇列項目（SQLite 忽略 FOR UPDATE 時也成立）
- 自己的項目在配對前就先取出；若已被別人取走，代表剛被配對，重新查詢既有對局
"""
from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from database import transactional
from models import Agent, EventLog, Match, MatchPhase, QueueEntry
from core.clock import utcnow
from core.exceptions import ErrorKind
from core.locks import lock_waiting_opponents, with_agent_lock, with_queue_entry_lock
from core.resolution import forfeit_expired_match
from core.results import MatchmakingResult
from core.state_machine import MatchStateMachine
from services.agent_registry import agent_exists

logger = logging.getLogger(__name__)


def find_active_match(db: Session, agent_id: str) -> Optional[Match]:
    """找出 agent 尚未結束的對局（最多一場）"""
    return db.query(Match).filter(
        or_(Match.player1_id == agent_id, Match.player2_id == agent_id),
        Match.phase.notin_(list(MatchStateMachine.TERMINAL_PHASES)),
    ).order_by(Match.created_at.desc()).populate_existing().with_for_update(nowait=False).first()


def take_queue_entry(db: Session, entry_id: str) -> bool:
    """
    條件式取出一筆佇列項目

    返回：
        True 如果本 transaction 刪到了這一筆；False 表示已被其他請求取走
    """
    taken = db.query(QueueEntry).filter(
        QueueEntry.id == entry_id
    ).delete(synchronize_session=False)
    return taken == 1


def _remove_queue_entry(db: Session, agent_id: str) -> bool:
    removed = db.query(QueueEntry).filter(
        QueueEntry.agent_id == agent_id
    ).delete(synchronize_session=False)
    return removed > 0


def _matched(active: Match, agent_id: str) -> MatchmakingResult:
    opponent = active.player2 if active.player1_id == agent_id else active.player1
    return MatchmakingResult.matched(
        match_id=active.id,
        opponent_name=opponent.name if opponent else None,
        phase=active.phase,
    )


class QueueManager:
    """配對佇列管理器"""

    @staticmethod
    @transactional
    def request_match(db: Session, agent_id: str,
                      now: Optional[datetime] = None) -> MatchmakingResult:
        """
        尋找對局（冪等）

        流程：
        1. agent 不存在 → NOT_FOUND；鎖定呼叫者與自己的佇列項目
        2. 已有未結束的對局 → 直接回傳（逾時的對局先判負，再繼續配對）
        3. 取出自己的佇列項目；取不到代表剛被別人配對 → 回傳該對局
        4. 佇列中有其他 agent → 取最早加入者，建立新 Match
        5. 否則放回佇列（保留原本的 joined_at）

        參數：
            db: SQLAlchemy Session
            agent_id: 呼叫者
            now: 目前時間（測試用）

        返回：
            MatchmakingResult（status = "queued" 或 "matched"）
        """
        now = now or utcnow()

        if not agent_exists(db, agent_id):
            return MatchmakingResult.failure(ErrorKind.NOT_FOUND, "Agent not found")
        with_agent_lock(agent_id, db).first()

        own_entry = with_queue_entry_lock(agent_id, db).first()

        # 1. 既有對局
        active = find_active_match(db, agent_id)
        if active and forfeit_expired_match(db, active, now):
            active = None

        if active:
            if own_entry and _remove_queue_entry(db, agent_id):
                logger.info(f"Removed stale queue entry for agent {agent_id}")
            return _matched(active, agent_id)

        # 2. 先取出自己的項目，之後不會再被別人配對
        joined_at = now
        if own_entry:
            joined_at = own_entry.joined_at
            db.expunge(own_entry)
            if not take_queue_entry(db, own_entry.id):
                active = find_active_match(db, agent_id)
                if active:
                    logger.info(f"Agent {agent_id} was paired concurrently into match {active.id}")
                    return _matched(active, agent_id)

        # 3. 找對手（排除自己）
        opponent_id = QueueManager._claim_opponent(db, agent_id, now)
        if opponent_id:
            opponent = db.query(Agent).filter(Agent.id == opponent_id).first()

            match = Match(
                player1_id=agent_id,
                player2_id=opponent_id,
                phase=MatchPhase.COMMIT,
                created_at=now,
                phase_deadline=MatchStateMachine.deadline_from(now),
            )
            db.add(match)
            db.flush()

            db.add(EventLog(
                match_id=match.id,
                event_type="MATCH_CREATED",
                data={"player1": agent_id, "player2": opponent_id},
            ))

            logger.info(f"Created match {match.id}: {agent_id} vs {opponent_id}")
            return MatchmakingResult.matched(
                match_id=match.id,
                opponent_name=opponent.name if opponent else None,
                phase=match.phase,
            )

        # 4. 加入（或放回）佇列
        db.add(QueueEntry(agent_id=agent_id, joined_at=joined_at))
        if not own_entry:
            db.add(EventLog(agent_id=agent_id, event_type="QUEUE_JOINED", data={}))
            logger.info(f"Agent {agent_id} joined the queue")

        return MatchmakingResult.queued()

    @staticmethod
    def _claim_opponent(db: Session, agent_id: str, now: datetime) -> Optional[str]:
        """
        依加入順序取得第一個有效的對手

        每個候選項目都以條件式刪除取得，已被其他請求取走的直接略過；
        取得後若該 agent 已經有進行中的對局（過期項目），項目維持刪除並繼續找下一個。

        返回：
            對手的 agent id，或 None
        """
        candidates = [
            (entry.id, entry.agent_id)
            for entry in lock_waiting_opponents(agent_id, db).all()
        ]
        for entry_id, candidate_id in candidates:
            if not take_queue_entry(db, entry_id):
                logger.info(f"Queue entry of agent {candidate_id} was taken concurrently, skipping")
                continue

            active = find_active_match(db, candidate_id)
            if active and not forfeit_expired_match(db, active, now):
                logger.info(
                    f"Discarding queue entry of agent {candidate_id}: already in match {active.id}"
                )
                continue

            return candidate_id
        return None

    @staticmethod
    def queue_length(db: Session) -> int:
        return db.query(QueueEntry).count()
