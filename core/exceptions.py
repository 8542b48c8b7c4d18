"""
自定義異常類別與錯誤種類

業務規則違反（非參與者、重複提交、階段不對…）不以異常傳遞，
而是以 core.results 的結果物件回傳 ErrorKind。

這裡的異常只保留給「不該發生」的情況：
- 程式錯誤（非法的階段轉換）
- 結算時參照的 agent 不存在

這些異常會讓 @transactional rollback，確保對局不會停在半結算狀態。
"""
import enum


class ErrorKind(str, enum.Enum):
    """對呼叫端可見的錯誤種類"""
    NOT_FOUND = "not_found"
    INVALID_PHASE = "invalid_phase"
    INVALID_INPUT = "invalid_input"
    ALREADY_SUBMITTED = "already_submitted"
    NOT_A_PARTICIPANT = "not_a_participant"
    INTEGRITY_VIOLATION = "integrity_violation"


class MatchEngineException(Exception):
    """所有對局引擎異常的基類"""
    pass


# ============ 狀態轉換異常 ============

class InvalidStateTransition(MatchEngineException):
    """非法的狀態轉換（例如階段倒退、離開終局）"""
    def __init__(self, match_id, current, target):
        self.match_id = match_id
        self.current = current
        self.target = target
        super().__init__(
            f"Match {match_id}: illegal transition {current.value} -> {target.value}"
        )


# ============ 積分異常 ============

class RatingApplicationError(MatchEngineException):
    """無法套用積分（例如對局參照的 agent 已不存在）"""
    pass
