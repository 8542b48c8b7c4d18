"""
Matchmaking API Endpoints

職責：
1. 尋找對局（冪等：等待中或對局中重複呼叫不會產生副作用）
2. 查詢佇列長度
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import FindMatchRequest, FindMatchResponse, QueueStatusResponse
from core.queue_manager import QueueManager
from api.errors import error_for

router = APIRouter(prefix="/api", tags=["matchmaking"])
logger = logging.getLogger(__name__)


@router.post("/matches/find", response_model=FindMatchResponse)
def find_match(request: FindMatchRequest, db: Session = Depends(get_db)):
    """
    尋找對局

    返回：
        - status: "queued"（等待對手）或 "matched"
        - match_id / opponent_name / phase：matched 時提供
    """
    try:
        result = QueueManager.request_match(db, request.agent_id)
        if not result.ok:
            raise error_for(result.error, result.message)

        return FindMatchResponse(
            status=result.status,
            match_id=result.match_id,
            opponent_name=result.opponent_name,
            phase=result.phase.value if result.phase else None,
            message=result.message,
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Matchmaking failed for agent {request.agent_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/queue", response_model=QueueStatusResponse)
def get_queue_status(db: Session = Depends(get_db)):
    """取得目前佇列長度"""
    return QueueStatusResponse(queue_length=QueueManager.queue_length(db))
