"""
資料模型：Agent、Match、QueueEntry、EventLog

Match 是唯一會被並發修改的核心文件：
- 每個玩家的每個欄位（commit / message / guess / choice）只能寫入一次
- phase 只會前進，不會倒退
- winner 與兩個 rating delta 在同一個 transaction 內一起寫入
- state_version 同時是樂觀鎖版本號與前端短輪詢的游標
"""
import enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import relationship

from database import Base
from core.clock import utcnow


def _new_id() -> str:
    return str(uuid4())


class MatchPhase(str, enum.Enum):
    COMMIT = "commit"
    MESSAGE = "message"
    GUESS = "guess"
    REVEAL = "reveal"
    COMPLETE = "complete"
    FORFEIT = "forfeit"


class Winner(str, enum.Enum):
    PLAYER1 = "player1"
    PLAYER2 = "player2"
    DRAW = "draw"


class Resolution(str, enum.Enum):
    PLAYED = "played"                            # 雙方完成揭示
    INTEGRITY_VIOLATION = "integrity_violation"  # 揭示與承諾不符
    TIMEOUT = "timeout"                          # 階段逾時


class Agent(Base):
    __tablename__ = "agents"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(64), nullable=False, unique=True)
    # 身分子系統管理的憑證參考（API key hash），對局引擎不讀取
    api_key_hash = Column(String(128), nullable=True, index=True)

    rating = Column(Integer, nullable=False, default=1200)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    draws = Column(Integer, nullable=False, default=0)
    games_played = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_active_at = Column(DateTime, nullable=True)


class Match(Base):
    __tablename__ = "matches"

    id = Column(String(36), primary_key=True, default=_new_id)
    player1_id = Column(String(36), ForeignKey("agents.id"), nullable=False, index=True)
    player2_id = Column(String(36), ForeignKey("agents.id"), nullable=False, index=True)

    phase = Column(Enum(MatchPhase), nullable=False, default=MatchPhase.COMMIT, index=True)
    phase_deadline = Column(DateTime, nullable=False)

    # Commit 階段：sha256(f"{choice}:{nonce}")
    player1_commit = Column(String(64), nullable=True)
    player2_commit = Column(String(64), nullable=True)

    # Message 階段：自由文字 + 宣稱值（未驗證）
    player1_message = Column(String(2000), nullable=True)
    player2_message = Column(String(2000), nullable=True)
    player1_claim = Column(Integer, nullable=True)
    player2_claim = Column(Integer, nullable=True)

    # Guess 階段：猜測對手的秘密選擇
    player1_guess = Column(Integer, nullable=True)
    player2_guess = Column(Integer, nullable=True)

    # Reveal 階段：驗證通過後才寫入
    player1_choice = Column(Integer, nullable=True)
    player1_nonce = Column(String(256), nullable=True)
    player2_choice = Column(Integer, nullable=True)
    player2_nonce = Column(String(256), nullable=True)

    winner = Column(Enum(Winner), nullable=True)
    resolution = Column(Enum(Resolution), nullable=True)
    player1_rating_delta = Column(Integer, nullable=True)
    player2_rating_delta = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)

    state_version = Column(Integer, nullable=False, default=1)

    player1 = relationship("Agent", foreign_keys=[player1_id])
    player2 = relationship("Agent", foreign_keys=[player2_id])

    __table_args__ = (
        Index("ix_matches_phase_deadline", "phase", "phase_deadline"),
    )
    __mapper_args__ = {"version_id_col": state_version}

    def role_of(self, agent_id):
        """回傳 agent 在此對局的位置（"player1" / "player2"），非參與者回傳 None"""
        if agent_id is None:
            return None
        if agent_id == self.player1_id:
            return "player1"
        if agent_id == self.player2_id:
            return "player2"
        return None

    def slot(self, role: str, field: str):
        return getattr(self, f"{role}_{field}")

    def set_slot(self, role: str, field: str, value) -> None:
        setattr(self, f"{role}_{field}", value)

    @property
    def winner_agent_id(self):
        if self.winner is None:
            return None
        if self.winner == Winner.DRAW:
            return "draw"
        return self.player1_id if self.winner == Winner.PLAYER1 else self.player2_id


class QueueEntry(Base):
    __tablename__ = "queue_entries"

    id = Column(String(36), primary_key=True, default=_new_id)
    # unique：同一個 agent 在佇列中最多一筆
    agent_id = Column(String(36), ForeignKey("agents.id"), nullable=False, unique=True)
    joined_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    agent = relationship("Agent")


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String(36), ForeignKey("matches.id"), nullable=True, index=True)
    agent_id = Column(String(36), nullable=True)
    event_type = Column(String(64), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)
