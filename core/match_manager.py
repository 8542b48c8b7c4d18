"""
Match Manager：管理對局的提交與推進

職責：
1. 接收各階段的玩家動作（commit / message / guess / reveal）
2. 驗證（參與者、階段、逾時、值域、一次性寫入）
3. 雙方都提交後推進階段；reveal 完成後結算
4. 提供依階段投影的對局資訊

並發：
- 每個操作都是一個 transaction，先鎖定並重新讀取 Match 再決定是否寫入
- 雙方同時提交同一階段：後 commit 的 transaction 會看到先前的寫入並負責推進，
  與提交順序無關
"""
from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.orm import Session

from database import get_settings, transactional
from models import EventLog, Match, MatchPhase, Resolution, Winner
from core.actions import (
    CommitAction,
    GuessAction,
    MessageAction,
    PhaseAction,
    RevealAction,
    is_binary,
)
from core.clock import utcnow
from core.exceptions import ErrorKind
from core.locks import with_match_lock
from core.resolution import forfeit_expired_match, resolve_match
from core.results import ActionResult
from core.state_machine import MatchStateMachine
from services.commitment_service import is_valid_commitment_format, verify_reveal
from services.match_view_service import project_match
from services.outcome_service import decide_winner

logger = logging.getLogger(__name__)


class MatchManager:
    """Match 生命週期管理器"""

    @staticmethod
    @transactional
    def submit_action(db: Session, match_id: str, agent_id: str,
                      action: PhaseAction, now: Optional[datetime] = None) -> ActionResult:
        """
        提交一個階段動作

        檢查順序：
        1. Match 存在                → NOT_FOUND
        2. 呼叫者是參與者            → NOT_A_PARTICIPANT
        3. 對局未結束                → INVALID_PHASE
        4. 未超過 deadline           → 否則觸發逾時判負，再回傳 INVALID_PHASE
        5. 動作與目前階段相符        → INVALID_PHASE
        6. 值域與格式                → INVALID_INPUT
        7. 欄位尚未寫入              → ALREADY_SUBMITTED
        8. （reveal）承諾驗證        → 不符則違規方判負並回傳 INTEGRITY_VIOLATION

        參數：
            db: SQLAlchemy Session
            match_id: Match id
            agent_id: 提交者
            action: CommitAction / MessageAction / GuessAction / RevealAction
            now: 目前時間（測試用，預設 utcnow()）

        返回：
            ActionResult（phase 為本次呼叫後的階段）
        """
        now = now or utcnow()

        match = with_match_lock(match_id, db).first()
        if not match:
            return ActionResult.failure(ErrorKind.NOT_FOUND, "Match not found")

        role = match.role_of(agent_id)
        if role is None:
            logger.warning(f"Agent {agent_id} is not a player in match {match_id}")
            return ActionResult.failure(
                ErrorKind.NOT_A_PARTICIPANT, "Not a player in this match", match.phase
            )

        if MatchStateMachine.is_terminal(match.phase):
            return ActionResult.failure(
                ErrorKind.INVALID_PHASE, f"Match already ended ({match.phase.value})", match.phase
            )

        if MatchStateMachine.is_expired(match, now):
            forfeit_expired_match(db, match, now)
            return ActionResult.failure(
                ErrorKind.INVALID_PHASE, "Phase deadline has passed, match forfeited", match.phase
            )

        if action.phase != match.phase:
            return ActionResult.failure(
                ErrorKind.INVALID_PHASE,
                f"Not in {action.phase.value} phase (current: {match.phase.value})",
                match.phase,
            )

        error = MatchManager._validate(action)
        if error:
            logger.warning(f"Rejected {action.phase.value} from {agent_id} in match {match_id}: {error}")
            return ActionResult.failure(ErrorKind.INVALID_INPUT, error, match.phase)

        if MatchStateMachine.has_submitted(match, role):
            return ActionResult.failure(
                ErrorKind.ALREADY_SUBMITTED,
                f"Already submitted {action.phase.value}",
                match.phase,
            )

        if isinstance(action, RevealAction):
            commitment = match.slot(role, "commit")
            if not verify_reveal(commitment, action.choice, action.nonce):
                return MatchManager._reject_reveal(db, match, role, agent_id, now)

        MatchManager._write(match, role, action)
        db.add(EventLog(
            match_id=match.id,
            agent_id=agent_id,
            event_type="SUBMISSION_ACCEPTED",
            data={"phase": match.phase.value, "role": role},
        ))
        db.flush()

        if MatchStateMachine.both_submitted(match):
            MatchManager._advance(db, match, now)

        return ActionResult.success(match.phase)

    @staticmethod
    def _validate(action: PhaseAction) -> Optional[str]:
        """回傳錯誤訊息，合法則回傳 None"""
        if isinstance(action, CommitAction):
            if not is_valid_commitment_format(action.hash):
                return "Hash must be a 64-character hex sha256 digest"
        elif isinstance(action, MessageAction):
            if not isinstance(action.message, str):
                return "Message must be a string"
            limit = get_settings().message_max_length
            if len(action.message) > limit:
                return f"Message too long (max {limit} chars)"
            if action.claim is not None and not is_binary(action.claim):
                return "Claim must be 0 or 1"
        elif isinstance(action, GuessAction):
            if not is_binary(action.guess):
                return "Guess must be 0 or 1"
        elif isinstance(action, RevealAction):
            if not is_binary(action.choice):
                return "Choice must be 0 or 1"
            if not isinstance(action.nonce, str) or not action.nonce:
                return "Nonce is required"
        else:
            return "Unknown action"
        return None

    @staticmethod
    def _write(match: Match, role: str, action: PhaseAction) -> None:
        if isinstance(action, CommitAction):
            match.set_slot(role, "commit", action.hash.lower())
        elif isinstance(action, MessageAction):
            match.set_slot(role, "message", action.message)
            match.set_slot(role, "claim", action.claim)
        elif isinstance(action, GuessAction):
            match.set_slot(role, "guess", action.guess)
        elif isinstance(action, RevealAction):
            match.set_slot(role, "nonce", action.nonce)
            match.set_slot(role, "choice", action.choice)

    @staticmethod
    def _advance(db: Session, match: Match, now: datetime) -> None:
        """雙方都已提交：推進到下一階段，reveal 完成則結算"""
        if match.phase != MatchPhase.REVEAL:
            MatchStateMachine.transition(db, match, MatchStateMachine.next_phase(match.phase), now)
            return

        winner = decide_winner(
            match.player1_guess,
            match.player2_guess,
            match.player1_choice,
            match.player2_choice,
        )
        resolve_match(db, match, MatchPhase.COMPLETE, winner, Resolution.PLAYED, now)

    @staticmethod
    def _reject_reveal(db: Session, match: Match, role: str, agent_id: str,
                       now: datetime) -> ActionResult:
        """
        揭示與承諾不符：違規方直接判負

        這不是一般的規則錯誤，對局會被結算（phase → complete），
        不符的揭示值不會被保存。
        """
        winner = Winner.PLAYER2 if role == "player1" else Winner.PLAYER1
        logger.warning(
            f"Integrity violation in match {match.id}: {role} ({agent_id}) "
            f"revealed a value that does not match the commitment"
        )
        db.add(EventLog(
            match_id=match.id,
            agent_id=agent_id,
            event_type="INTEGRITY_VIOLATION",
            data={"role": role},
        ))
        resolve_match(db, match, MatchPhase.COMPLETE, winner, Resolution.INTEGRITY_VIOLATION, now)
        return ActionResult.failure(
            ErrorKind.INTEGRITY_VIOLATION,
            "Reveal does not match commitment. You lose by integrity violation.",
            match.phase,
        )

    @staticmethod
    @transactional
    def get_match_view(db: Session, match_id: str, viewer_id: Optional[str] = None,
                       now: Optional[datetime] = None):
        """
        取得對局資訊（依階段隱藏資訊）

        讀取前會先做一次逾時檢查，過期的對局會在這裡被判負。

        返回：
            MatchView，或 None（Match 不存在）
        """
        now = now or utcnow()

        match = with_match_lock(match_id, db).first()
        if not match:
            return None

        forfeit_expired_match(db, match, now)
        return project_match(match, match.player1, match.player2, viewer_id)

