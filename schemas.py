"""
Request / Response schemas

對局資訊（MatchView）是依 phase 區分的 tagged union，
每個階段只包含該階段允許公開的欄位，不靠條件式塞入欄位。
"""
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictInt


# ============ Matchmaking ============

class FindMatchRequest(BaseModel):
    agent_id: str


class FindMatchResponse(BaseModel):
    status: Literal["queued", "matched"]
    match_id: Optional[str] = None
    opponent_name: Optional[str] = None
    phase: Optional[str] = None
    message: Optional[str] = None


class QueueStatusResponse(BaseModel):
    queue_length: int


# ============ Phase actions ============
# 0/1 欄位用 StrictInt：JSON 的 true/false 與 "1" 不會被轉成整數
# 值域（0/1、長度、雜湊格式）由 MatchManager 驗證並回傳 invalid_input

class CommitSubmit(BaseModel):
    agent_id: str
    hash: str


class MessageSubmit(BaseModel):
    agent_id: str
    message: str
    claim: Optional[StrictInt] = None


class GuessSubmit(BaseModel):
    agent_id: str
    guess: StrictInt


class RevealSubmit(BaseModel):
    agent_id: str
    choice: StrictInt
    nonce: str


class ActionResponse(BaseModel):
    success: bool = True
    phase: str


class TimeoutCheckResponse(BaseModel):
    status: str
    timed_out: bool = False
    winner: Optional[str] = None


class ErrorDetail(BaseModel):
    error: str
    message: str


# ============ Match views ============

class PlayerSummary(BaseModel):
    agent_id: str
    name: str
    rating: int


class _MatchViewBase(BaseModel):
    match_id: str
    player1: PlayerSummary
    player2: PlayerSummary
    phase_deadline: datetime
    created_at: datetime
    state_version: int
    viewer_role: Optional[Literal["player1", "player2"]] = None


class _OwnSubmissions(BaseModel):
    your_message: Optional[str] = None
    your_claim: Optional[int] = None
    your_guess: Optional[int] = None


class CommitPhaseView(_MatchViewBase):
    phase: Literal["commit"] = "commit"
    player1_committed: bool
    player2_committed: bool


class MessagePhaseView(_MatchViewBase, _OwnSubmissions):
    phase: Literal["message"] = "message"
    player1_messaged: bool
    player2_messaged: bool


class GuessPhaseView(_MatchViewBase, _OwnSubmissions):
    phase: Literal["guess"] = "guess"
    player1_message: Optional[str] = None
    player2_message: Optional[str] = None
    player1_claim: Optional[int] = None
    player2_claim: Optional[int] = None
    player1_guessed: bool
    player2_guessed: bool


class RevealPhaseView(_MatchViewBase, _OwnSubmissions):
    phase: Literal["reveal"] = "reveal"
    player1_message: Optional[str] = None
    player2_message: Optional[str] = None
    player1_claim: Optional[int] = None
    player2_claim: Optional[int] = None
    player1_revealed: bool
    player2_revealed: bool


class ResolvedMatchView(_MatchViewBase):
    phase: Literal["complete", "forfeit"]
    completed_at: Optional[datetime] = None
    winner: Optional[str] = None            # agent id 或 "draw"
    resolution: Optional[str] = None
    player1_message: Optional[str] = None
    player2_message: Optional[str] = None
    player1_claim: Optional[int] = None
    player2_claim: Optional[int] = None
    player1_guess: Optional[int] = None
    player2_guess: Optional[int] = None
    player1_choice: Optional[int] = None
    player2_choice: Optional[int] = None
    player1_nonce: Optional[str] = None
    player2_nonce: Optional[str] = None
    player1_rating_delta: Optional[int] = None
    player2_rating_delta: Optional[int] = None


MatchView = Annotated[
    Union[CommitPhaseView, MessagePhaseView, GuessPhaseView, RevealPhaseView, ResolvedMatchView],
    Field(discriminator="phase"),
]
