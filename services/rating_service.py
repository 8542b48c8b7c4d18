"""
積分服務：Elo 計算與一次性套用

公式：
    expected = 1 / (1 + 10^((opponent - self) / 400))
    delta = round(K × (result - expected))，K = 32

特性：
- 同一場對局兩方的 delta 互為相反數（一方的 delta 由另一方取負號得到）
- |delta| <= K
- 低分方爆冷獲勝的 delta 大於預期中的勝利

apply_match_result() 以「match 上是否已有 delta」作為一次性標記，
重複呼叫（client 重試、逾時巡檢與正常推進競爭）不會重複套用。
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from database import get_settings
from models import EventLog, Match, MatchPhase, Resolution, Winner
from core.exceptions import RatingApplicationError
from core.locks import lock_agents
from services.agent_registry import Outcome, get_rating, update_agent_stats
from services.outcome_service import score_for

logger = logging.getLogger(__name__)

K_FACTOR = 32
_VALID_RESULTS = (0, 0.5, 1)


@dataclass(frozen=True)
class RatingUpdate:
    player1_delta: int
    player2_delta: int
    player1_rating: int
    player2_rating: int


def expected_score(self_rating: float, opponent_rating: float) -> float:
    return 1.0 / (1.0 + 10.0 ** ((opponent_rating - self_rating) / 400.0))


def calculate_rating_delta(self_rating: float, opponent_rating: float,
                           result: float, k: int = K_FACTOR) -> int:
    """
    計算單方的積分變化

    參數：
        self_rating: 自己的積分
        opponent_rating: 對手的積分
        result: 1 = 勝、0.5 = 平、0 = 負
        k: K 值

    返回：
        整數 delta

    範例：
        calculate_rating_delta(1200, 1200, 1) -> 16
        calculate_rating_delta(1200, 1200, 0.5) -> 0
    """
    if result not in _VALID_RESULTS:
        raise ValueError(f"Result must be one of {_VALID_RESULTS}, got {result}")
    # 一律由同一側計算，另一側取負號
    if (self_rating, result) > (opponent_rating, 1 - result):
        return -calculate_rating_delta(opponent_rating, self_rating, 1 - result, k)
    return int(round(k * (result - expected_score(self_rating, opponent_rating))))


def _outcome(score: float) -> Outcome:
    if score == 1:
        return Outcome.WIN
    if score == 0:
        return Outcome.LOSS
    return Outcome.DRAW


def apply_match_result(db: Session, match: Match, now: datetime) -> Optional[RatingUpdate]:
    """
    套用對局結果到雙方積分與戰績（一次性）

    前置條件：
    - match 已是終局（complete / forfeit）且 winner 已設定
    - 呼叫者持有 match 的行級鎖，且在同一個 transaction 內

    流程：
    1. 已有 delta → 直接返回 None（已套用過）
    2. 逾時且平手 → delta 記為 0 / 0，不動 agent（視為無資料）
    3. 鎖定雙方 agent，任一不存在 → RatingApplicationError（整個結算 rollback）
    4. 以目前積分計算 delta，寫入 agent 與 match

    返回：
        RatingUpdate，或 None（已套用過）
    """
    if match.player1_rating_delta is not None:
        logger.info(f"Rating already applied for match {match.id}, skipping")
        return None

    if match.phase not in (MatchPhase.COMPLETE, MatchPhase.FORFEIT) or match.winner is None:
        raise RatingApplicationError(
            f"Match {match.id} is not resolved (phase={match.phase.value})"
        )

    if match.resolution == Resolution.TIMEOUT and match.winner == Winner.DRAW:
        match.player1_rating_delta = 0
        match.player2_rating_delta = 0
        logger.info(f"Match {match.id} forfeited as draw, no rating effect")
        return None

    agents = lock_agents([match.player1_id, match.player2_id], db)
    player1 = agents.get(match.player1_id)
    player2 = agents.get(match.player2_id)
    if player1 is None or player2 is None:
        raise RatingApplicationError(f"Players not found for match {match.id}")

    k = get_settings().rating_k_factor
    player1_score = score_for(match.winner, "player1")
    player2_score = score_for(match.winner, "player2")

    # 鎖定後透過身分子系統介面讀取目前積分
    player1_rating = get_rating(db, match.player1_id)
    player2_rating = get_rating(db, match.player2_id)

    player1_delta = calculate_rating_delta(player1_rating, player2_rating, player1_score, k)
    player2_delta = calculate_rating_delta(player2_rating, player1_rating, player2_score, k)

    update_agent_stats(player1, player1_delta, _outcome(player1_score))
    update_agent_stats(player2, player2_delta, _outcome(player2_score))

    match.player1_rating_delta = player1_delta
    match.player2_rating_delta = player2_delta

    db.add(EventLog(
        match_id=match.id,
        event_type="RATING_APPLIED",
        data={
            "player1_delta": player1_delta,
            "player2_delta": player2_delta,
            "player1_rating": player1.rating,
            "player2_rating": player2.rating,
        },
    ))
    db.flush()

    logger.info(
        f"Applied rating for match {match.id}: "
        f"player1 {player1_delta:+d} -> {player1.rating}, "
        f"player2 {player2_delta:+d} -> {player2.rating}"
    )
    return RatingUpdate(
        player1_delta=player1_delta,
        player2_delta=player2_delta,
        player1_rating=player1.rating,
        player2_rating=player2.rating,
    )
