"""
終局結算

winner、resolution、completed_at 與兩個 rating delta 必須在同一個 transaction 內
一起寫入，且只寫一次。所有終局路徑（正常揭示、揭示不符、逾時）都經過這裡。
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from models import EventLog, Match, MatchPhase, Resolution, Winner
from core.locks import lock_agents
from core.state_machine import MatchStateMachine
from services.agent_registry import touch_last_active
from services.rating_service import apply_match_result

logger = logging.getLogger(__name__)


def resolve_match(db: Session, match: Match, terminal_phase: MatchPhase,
                  winner: Winner, resolution: Resolution, now: datetime) -> bool:
    """
    結算對局

    參數：
        db: SQLAlchemy Session
        match: 已鎖定的 Match
        terminal_phase: COMPLETE 或 FORFEIT
        winner: 勝方
        resolution: 結算原因
        now: 目前時間

    返回：
        True 如果本次呼叫完成結算，False 如果已經結算過
    """
    if match.winner is not None:
        return False

    MatchStateMachine.transition(db, match, terminal_phase, now)
    match.winner = winner
    match.resolution = resolution
    match.completed_at = now

    apply_match_result(db, match, now)

    for agent in lock_agents([match.player1_id, match.player2_id], db).values():
        touch_last_active(agent, now)

    db.add(EventLog(
        match_id=match.id,
        event_type="MATCH_RESOLVED",
        data={
            "phase": terminal_phase.value,
            "winner": winner.value,
            "resolution": resolution.value,
        },
    ))
    db.flush()

    logger.info(
        f"Match {match.id} resolved: phase={terminal_phase.value} "
        f"winner={winner.value} reason={resolution.value}"
    )
    return True


def forfeit_winner(match: Match) -> Winner:
    """
    逾時判定：只有一方完成目前階段的提交 → 完成者勝；雙方都沒有（或都有）→ 平手
    """
    player1_done = MatchStateMachine.has_submitted(match, "player1")
    player2_done = MatchStateMachine.has_submitted(match, "player2")

    if player1_done and not player2_done:
        return Winner.PLAYER1
    if player2_done and not player1_done:
        return Winner.PLAYER2
    return Winner.DRAW


def forfeit_expired_match(db: Session, match: Match, now: datetime) -> bool:
    """
    若對局未結束且已超過 deadline，強制以 forfeit 結算

    呼叫者必須持有 match 的行級鎖（階段在鎖內重新檢查，
    與正常推進競爭時只有一方會成功）

    返回：
        True 如果本次呼叫執行了逾時判負
    """
    if MatchStateMachine.is_terminal(match.phase):
        return False
    if not MatchStateMachine.is_expired(match, now):
        return False

    winner = forfeit_winner(match)
    logger.warning(
        f"Match {match.id} timed out in phase {match.phase.value}, winner={winner.value}"
    )
    return resolve_match(db, match, MatchPhase.FORFEIT, winner, Resolution.TIMEOUT, now)
