"""
對局投影服務：依階段產生對外可見的對局資訊

資訊隱藏規則：
- commit：只公開誰已提交承諾，承諾雜湊不回傳
- message：只公開誰已送出訊息（第二則訊息到達前，任何一方的訊息都不可見）
- guess：雙方訊息與宣稱值公開，只公開誰已猜測
- reveal：同上，猜測內容仍隱藏，只公開誰已揭示
- complete / forfeit：全部公開（選擇、nonce、猜測、勝負、積分變化）

每個階段各自一個純函式，輸入 Match，輸出對應的 view 型別。
"""
from typing import Optional

from models import Agent, Match, MatchPhase
from schemas import (
    CommitPhaseView,
    GuessPhaseView,
    MessagePhaseView,
    PlayerSummary,
    ResolvedMatchView,
    RevealPhaseView,
)


def _player_summary(agent: Agent) -> PlayerSummary:
    return PlayerSummary(agent_id=agent.id, name=agent.name, rating=agent.rating)


def _base_fields(match: Match, player1: Agent, player2: Agent, viewer_role: Optional[str]) -> dict:
    return {
        "match_id": match.id,
        "player1": _player_summary(player1),
        "player2": _player_summary(player2),
        "phase_deadline": match.phase_deadline,
        "created_at": match.created_at,
        "state_version": match.state_version,
        "viewer_role": viewer_role,
    }


def _own_fields(match: Match, viewer_role: Optional[str]) -> dict:
    """觀看者自己的提交內容（不含承諾與揭示）"""
    if viewer_role is None:
        return {}
    return {
        "your_message": match.slot(viewer_role, "message"),
        "your_claim": match.slot(viewer_role, "claim"),
        "your_guess": match.slot(viewer_role, "guess"),
    }


def _public_messages(match: Match) -> dict:
    return {
        "player1_message": match.player1_message,
        "player2_message": match.player2_message,
        "player1_claim": match.player1_claim,
        "player2_claim": match.player2_claim,
    }


def project_commit(match: Match, base: dict) -> CommitPhaseView:
    return CommitPhaseView(
        **base,
        player1_committed=match.player1_commit is not None,
        player2_committed=match.player2_commit is not None,
    )


def project_message(match: Match, base: dict, own: dict) -> MessagePhaseView:
    return MessagePhaseView(
        **base,
        **own,
        player1_messaged=match.player1_message is not None,
        player2_messaged=match.player2_message is not None,
    )


def project_guess(match: Match, base: dict, own: dict) -> GuessPhaseView:
    return GuessPhaseView(
        **base,
        **own,
        **_public_messages(match),
        player1_guessed=match.player1_guess is not None,
        player2_guessed=match.player2_guess is not None,
    )


def project_reveal(match: Match, base: dict, own: dict) -> RevealPhaseView:
    return RevealPhaseView(
        **base,
        **own,
        **_public_messages(match),
        player1_revealed=match.player1_choice is not None,
        player2_revealed=match.player2_choice is not None,
    )


def project_resolved(match: Match, base: dict) -> ResolvedMatchView:
    return ResolvedMatchView(
        **base,
        **_public_messages(match),
        phase=match.phase.value,
        completed_at=match.completed_at,
        winner=match.winner_agent_id,
        resolution=match.resolution.value if match.resolution else None,
        player1_guess=match.player1_guess,
        player2_guess=match.player2_guess,
        player1_choice=match.player1_choice,
        player2_choice=match.player2_choice,
        player1_nonce=match.player1_nonce,
        player2_nonce=match.player2_nonce,
        player1_rating_delta=match.player1_rating_delta,
        player2_rating_delta=match.player2_rating_delta,
    )


def project_match(match: Match, player1: Agent, player2: Agent, viewer_id: Optional[str] = None):
    """
    依目前階段投影對局

    參數：
        match: Match
        player1, player2: 雙方 Agent
        viewer_id: 觀看者 agent id（可為 None，非參與者視同旁觀）

    返回：
        CommitPhaseView / MessagePhaseView / GuessPhaseView / RevealPhaseView / ResolvedMatchView
    """
    viewer_role = match.role_of(viewer_id)
    base = _base_fields(match, player1, player2, viewer_role)

    if match.phase == MatchPhase.COMMIT:
        return project_commit(match, base)
    if match.phase == MatchPhase.MESSAGE:
        return project_message(match, base, _own_fields(match, viewer_role))
    if match.phase == MatchPhase.GUESS:
        return project_guess(match, base, _own_fields(match, viewer_role))
    if match.phase == MatchPhase.REVEAL:
        return project_reveal(match, base, _own_fields(match, viewer_role))
    return project_resolved(match, base)
