"""
對局狀態機：集中管理所有 Match 階段轉換

階段順序：
    commit → message → guess → reveal → complete
    任何非終局階段逾時 → forfeit
    reveal 揭示不符 → complete（違規方判負）

原則：
- 階段只會前進，不會倒退
- 終局（complete / forfeit）不可再離開
- 每次進入非終局階段都會重設 phase_deadline
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from database import get_settings
from models import EventLog, Match, MatchPhase
from core.exceptions import InvalidStateTransition

logger = logging.getLogger(__name__)


class MatchStateMachine:
    """Match 階段狀態機"""

    PHASE_ORDER = [
        MatchPhase.COMMIT,
        MatchPhase.MESSAGE,
        MatchPhase.GUESS,
        MatchPhase.REVEAL,
    ]

    TERMINAL_PHASES = {MatchPhase.COMPLETE, MatchPhase.FORFEIT}

    ALLOWED_TRANSITIONS = {
        MatchPhase.COMMIT: {MatchPhase.MESSAGE, MatchPhase.FORFEIT},
        MatchPhase.MESSAGE: {MatchPhase.GUESS, MatchPhase.FORFEIT},
        MatchPhase.GUESS: {MatchPhase.REVEAL, MatchPhase.FORFEIT},
        MatchPhase.REVEAL: {MatchPhase.COMPLETE, MatchPhase.FORFEIT},
        MatchPhase.COMPLETE: set(),
        MatchPhase.FORFEIT: set(),
    }

    # 每個階段玩家必須填寫的欄位
    REQUIRED_FIELD = {
        MatchPhase.COMMIT: "commit",
        MatchPhase.MESSAGE: "message",
        MatchPhase.GUESS: "guess",
        MatchPhase.REVEAL: "choice",
    }

    @classmethod
    def is_terminal(cls, phase: MatchPhase) -> bool:
        return phase in cls.TERMINAL_PHASES

    @classmethod
    def required_field(cls, phase: MatchPhase) -> str:
        return cls.REQUIRED_FIELD[phase]

    @classmethod
    def next_phase(cls, phase: MatchPhase) -> MatchPhase:
        """正常推進的下一個階段（reveal 之後是 complete）"""
        idx = cls.PHASE_ORDER.index(phase)
        if idx + 1 < len(cls.PHASE_ORDER):
            return cls.PHASE_ORDER[idx + 1]
        return MatchPhase.COMPLETE

    @classmethod
    def has_submitted(cls, match: Match, role: str, phase: MatchPhase = None) -> bool:
        phase = phase or match.phase
        return match.slot(role, cls.required_field(phase)) is not None

    @classmethod
    def both_submitted(cls, match: Match) -> bool:
        return (
            cls.has_submitted(match, "player1")
            and cls.has_submitted(match, "player2")
        )

    @classmethod
    def deadline_from(cls, now: datetime) -> datetime:
        return now + timedelta(seconds=get_settings().phase_timeout_seconds)

    @classmethod
    def is_expired(cls, match: Match, now: datetime) -> bool:
        return now > match.phase_deadline

    @classmethod
    def transition(cls, db: Session, match: Match, new_phase: MatchPhase,
                   now: datetime) -> Match:
        """
        執行階段轉換

        參數：
            db: SQLAlchemy Session
            match: 已鎖定的 Match
            new_phase: 目標階段
            now: 目前時間（用於重設 deadline）

        返回：
            更新後的 Match

        異常：
            InvalidStateTransition: 目標階段不在允許清單內

        注意：
            - 不 commit，由外層 transaction 處理
            - 會記錄 PHASE_CHANGED 事件
        """
        current = match.phase
        if new_phase not in cls.ALLOWED_TRANSITIONS[current]:
            raise InvalidStateTransition(match.id, current, new_phase)

        match.phase = new_phase
        if not cls.is_terminal(new_phase):
            match.phase_deadline = cls.deadline_from(now)

        db.add(EventLog(
            match_id=match.id,
            event_type="PHASE_CHANGED",
            data={"from": current.value, "to": new_phase.value},
        ))

        logger.info(f"Match {match.id}: {current.value} -> {new_phase.value}")
        return match
