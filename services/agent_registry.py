"""
Agent Registry：對局引擎與身分子系統之間的介面

身分子系統（註冊、憑證、社群帳號驗證）不在對局引擎範圍內，
引擎只需要：
- agent_exists()：存在檢查（配對前）
- get_rating()：讀取目前積分
- update_agent_stats()：結算時寫入積分與戰績

create_agent() 提供最小的建立流程（含早期玩家的起始積分），
讓測試與種子資料不需要完整的註冊流程。
"""
import enum
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from database import get_settings
from models import Agent

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


def agent_exists(db: Session, agent_id: str) -> bool:
    return db.query(Agent.id).filter(Agent.id == agent_id).first() is not None


def get_rating(db: Session, agent_id: str) -> int:
    """
    取得 agent 目前積分

    異常：
        ValueError: agent 不存在
    """
    row = db.query(Agent.rating).filter(Agent.id == agent_id).first()
    if row is None:
        raise ValueError(f"Agent {agent_id} not found")
    return row[0]


def starting_rating(existing_count: int) -> int:
    """
    起始積分：前 early_adopter_limit 位 agent 為早期玩家（1225），其他為 1200
    """
    settings = get_settings()
    if existing_count < settings.early_adopter_limit:
        return settings.early_adopter_rating
    return settings.initial_rating


def create_agent(db: Session, name: str, api_key_hash: Optional[str] = None) -> Agent:
    """
    建立 agent（不 commit，交由呼叫者處理）

    參數：
        db: SQLAlchemy Session
        name: 唯一名稱
        api_key_hash: 憑證參考（可為 None）

    返回：
        新建立的 Agent
    """
    existing_count = db.query(Agent).count()
    agent = Agent(
        name=name,
        api_key_hash=api_key_hash,
        rating=starting_rating(existing_count),
    )
    db.add(agent)
    db.flush()
    logger.info(f"Created agent {agent.id} ({name}) with rating {agent.rating}")
    return agent


def update_agent_stats(agent: Agent, rating_delta: int, outcome: Outcome) -> None:
    """
    套用一場對局的結果到 agent（呼叫者必須已鎖定該 agent）

    只應由 RatingService.apply_match_result() 呼叫，
    其他路徑不得在對局結算期間修改積分欄位。
    """
    agent.rating = agent.rating + rating_delta
    agent.games_played = agent.games_played + 1
    if outcome == Outcome.WIN:
        agent.wins = agent.wins + 1
    elif outcome == Outcome.LOSS:
        agent.losses = agent.losses + 1
    else:
        agent.draws = agent.draws + 1


def touch_last_active(agent: Agent, now: datetime) -> None:
    agent.last_active_at = now
