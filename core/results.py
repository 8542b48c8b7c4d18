"""
操作結果型別

每個對外操作都回傳明確的結果物件，成功時帶資料，失敗時帶一個 ErrorKind。
API 層只需要依 ErrorKind 對應 HTTP status code。
"""
from dataclasses import dataclass
from typing import Optional

from core.exceptions import ErrorKind
from models import MatchPhase


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    phase: Optional[MatchPhase] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, phase: MatchPhase) -> "ActionResult":
        return cls(ok=True, phase=phase)

    @classmethod
    def failure(cls, error: ErrorKind, message: str,
                phase: Optional[MatchPhase] = None) -> "ActionResult":
        return cls(ok=False, phase=phase, error=error, message=message)


@dataclass(frozen=True)
class MatchmakingResult:
    ok: bool
    status: Optional[str] = None            # "queued" | "matched"
    match_id: Optional[str] = None
    opponent_name: Optional[str] = None
    phase: Optional[MatchPhase] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def queued(cls) -> "MatchmakingResult":
        return cls(ok=True, status="queued", message="Waiting for opponent...")

    @classmethod
    def matched(cls, match_id: str, opponent_name: Optional[str],
                phase: MatchPhase) -> "MatchmakingResult":
        return cls(ok=True, status="matched", match_id=match_id,
                   opponent_name=opponent_name, phase=phase)

    @classmethod
    def failure(cls, error: ErrorKind, message: str) -> "MatchmakingResult":
        return cls(ok=False, error=error, message=message)


@dataclass(frozen=True)
class TimeoutCheckResult:
    ok: bool
    phase: Optional[MatchPhase] = None
    timed_out: bool = False
    winner: Optional[str] = None            # agent id 或 "draw"
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def failure(cls, error: ErrorKind, message: str) -> "TimeoutCheckResult":
        return cls(ok=False, error=error, message=message)
