"""
Timeout Sweeper：逾時判負

check_timeout() 可重複、可與正常遊戲並發呼叫：
- 已結束的對局：不做任何事，回傳目前狀態
- 超過 deadline：只完成目前階段的一方獲勝，否則平手；phase → forfeit
- 未超過：回傳目前階段

背景巡檢（run_timeout_sweeper）定期找出所有過期對局並逐一判負，
每場對局各自一個 transaction。
"""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from database import transactional
from models import Match
from core.clock import utcnow
from core.exceptions import ErrorKind
from core.locks import with_match_lock
from core.resolution import forfeit_expired_match
from core.results import TimeoutCheckResult
from core.state_machine import MatchStateMachine

logger = logging.getLogger(__name__)


class TimeoutSweeper:
    """逾時檢查與巡檢"""

    @staticmethod
    @transactional
    def check_timeout(db: Session, match_id: str,
                      now: Optional[datetime] = None) -> TimeoutCheckResult:
        """
        檢查單場對局是否逾時（冪等）

        參數：
            db: SQLAlchemy Session
            match_id: Match id
            now: 目前時間（測試用）

        返回：
            TimeoutCheckResult
        """
        now = now or utcnow()

        match = with_match_lock(match_id, db).first()
        if not match:
            return TimeoutCheckResult.failure(ErrorKind.NOT_FOUND, "Match not found")

        timed_out = forfeit_expired_match(db, match, now)
        return TimeoutCheckResult(
            ok=True,
            phase=match.phase,
            timed_out=timed_out,
            winner=match.winner_agent_id,
        )

    @staticmethod
    def sweep_expired(db: Session, now: Optional[datetime] = None) -> List[str]:
        """
        找出所有過期且未結束的對局並判負

        返回：
            本次被判負的 match id 列表
        """
        now = now or utcnow()

        rows = db.query(Match.id).filter(
            Match.phase.in_(MatchStateMachine.PHASE_ORDER),
            Match.phase_deadline < now,
        ).all()

        forfeited = []
        for (match_id,) in rows:
            result = TimeoutSweeper.check_timeout(db, match_id, now=now)
            if result.ok and result.timed_out:
                forfeited.append(match_id)

        if forfeited:
            logger.info(f"Timeout sweep forfeited {len(forfeited)} match(es)")
        return forfeited


def _sweep_once(session_factory) -> List[str]:
    db = session_factory()
    try:
        return TimeoutSweeper.sweep_expired(db)
    finally:
        db.close()


async def run_timeout_sweeper(session_factory, interval_seconds: float) -> None:
    """
    背景巡檢迴圈（由 FastAPI lifespan 啟動）

    每一輪在 worker thread 執行，單輪失敗只記錄 log，不中斷迴圈
    """
    logger.info(f"Timeout sweeper started (interval={interval_seconds}s)")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(_sweep_once, session_factory)
        except Exception as e:
            logger.error(f"Timeout sweep failed: {e}", exc_info=True)
