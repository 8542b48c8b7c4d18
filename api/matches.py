"""
Match API Endpoints - 短輪詢版

重點：
1. 每個階段一個 endpoint，所有業務邏輯集中在 MatchManager
2. GET /matches/{id} 依階段回傳不同的 view，前端靠 state_version 判斷是否有更新
3. 讀取與提交都會順便做逾時檢查
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

import logging

from database import get_db
from schemas import (
    ActionResponse,
    CommitSubmit,
    GuessSubmit,
    MatchView,
    MessageSubmit,
    RevealSubmit,
    TimeoutCheckResponse,
)
from core.actions import CommitAction, GuessAction, MessageAction, PhaseAction, RevealAction
from core.match_manager import MatchManager
from core.timeout_sweeper import TimeoutSweeper
from api.errors import concurrent_update, error_for

router = APIRouter(prefix="/api/matches", tags=["matches"])
logger = logging.getLogger(__name__)


def _submit(db: Session, match_id: str, agent_id: str, action: PhaseAction) -> ActionResponse:
    """
    提交動作的共用流程

    失敗結果轉成對應的 HTTP 錯誤；INTEGRITY_VIOLATION 與逾時判負的寫入
    在回傳錯誤前已經 commit。
    """
    try:
        result = MatchManager.submit_action(db, match_id, agent_id, action)
        if not result.ok:
            logger.info(
                f"Rejected {action.phase.value} for agent {agent_id} "
                f"in match {match_id}: {result.error.value}"
            )
            raise error_for(result.error, result.message)

        return ActionResponse(success=True, phase=result.phase.value)

    except HTTPException:
        raise
    except StaleDataError:
        raise concurrent_update()
    except Exception as e:
        logger.error(f"Failed to submit {action.phase.value} for match {match_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{match_id}", response_model=MatchView)
def get_match(
    match_id: str,
    agent_id: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """
    取得對局資訊（依階段隱藏資訊）

    參數：
        match_id: Match id
        agent_id: 觀看者（選填），提供時會包含自己的提交內容

    返回：
        CommitPhaseView / MessagePhaseView / GuessPhaseView / RevealPhaseView / ResolvedMatchView
    """
    try:
        view = MatchManager.get_match_view(db, match_id, agent_id)
        if view is None:
            raise HTTPException(
                status_code=404,
                detail={"error": "not_found", "message": "Match not found"},
            )
        return view

    except HTTPException:
        raise
    except StaleDataError:
        raise concurrent_update()
    except Exception as e:
        logger.error(f"Failed to get match {match_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{match_id}/commit", response_model=ActionResponse)
def submit_commit(match_id: str, data: CommitSubmit, db: Session = Depends(get_db)):
    """提交承諾：hash = sha256(f"{choice}:{nonce}")"""
    return _submit(db, match_id, data.agent_id, CommitAction(hash=data.hash))


@router.post("/{match_id}/message", response_model=ActionResponse)
def submit_message(match_id: str, data: MessageSubmit, db: Session = Depends(get_db)):
    """
    送出訊息（最多 500 字）與選填的宣稱值

    雙方都送出後才會對彼此公開
    """
    return _submit(db, match_id, data.agent_id, MessageAction(message=data.message, claim=data.claim))


@router.post("/{match_id}/guess", response_model=ActionResponse)
def submit_guess(match_id: str, data: GuessSubmit, db: Session = Depends(get_db)):
    return _submit(db, match_id, data.agent_id, GuessAction(guess=data.guess))


@router.post("/{match_id}/reveal", response_model=ActionResponse)
def submit_reveal(match_id: str, data: RevealSubmit, db: Session = Depends(get_db)):
    """
    揭示 (choice, nonce)

    與承諾不符 → 400 integrity_violation，且揭示方直接判負
    """
    return _submit(db, match_id, data.agent_id, RevealAction(choice=data.choice, nonce=data.nonce))


@router.post("/{match_id}/check-timeout", response_model=TimeoutCheckResponse)
def check_timeout(match_id: str, db: Session = Depends(get_db)):
    """
    逾時檢查（可重複呼叫）

    返回：
        - status: 目前階段（逾時後為 forfeit）
        - timed_out: 本次呼叫是否執行了判負
        - winner: agent id 或 "draw"（已結束時）
    """
    try:
        result = TimeoutSweeper.check_timeout(db, match_id)
        if not result.ok:
            raise error_for(result.error, result.message)

        return TimeoutCheckResponse(
            status=result.phase.value,
            timed_out=result.timed_out,
            winner=result.winner,
        )

    except HTTPException:
        raise
    except StaleDataError:
        raise concurrent_update()
    except Exception as e:
        logger.error(f"Failed to check timeout for match {match_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
