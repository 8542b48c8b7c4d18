"""
各階段的玩家動作

API 層負責把 request body 轉成這些物件；值域檢查（0/1、長度、雜湊格式）
在 MatchManager 內進行，才能回傳 INVALID_INPUT 而不修改狀態。
"""
from dataclasses import dataclass
from typing import Any, Optional, Union

from models import MatchPhase


@dataclass(frozen=True)
class CommitAction:
    hash: Any
    phase = MatchPhase.COMMIT


@dataclass(frozen=True)
class MessageAction:
    message: Any
    claim: Optional[Any] = None
    phase = MatchPhase.MESSAGE


@dataclass(frozen=True)
class GuessAction:
    guess: Any
    phase = MatchPhase.GUESS


@dataclass(frozen=True)
class RevealAction:
    choice: Any
    nonce: Any
    phase = MatchPhase.REVEAL


PhaseAction = Union[CommitAction, MessageAction, GuessAction, RevealAction]

BINARY_DOMAIN = (0, 1)


def is_binary(value) -> bool:
    # bool 是 int 的子類別，True/False 不接受
    return isinstance(value, int) and not isinstance(value, bool) and value in BINARY_DOMAIN
