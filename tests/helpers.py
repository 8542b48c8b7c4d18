"""測試用的對局操作捷徑"""
from datetime import timedelta

from core.actions import CommitAction, GuessAction, MessageAction, RevealAction
from core.match_manager import MatchManager
from core.queue_manager import QueueManager
from services.commitment_service import compute_commitment


def create_match(db, player1_id, player2_id, now):
    """player2 先排隊，player1 再配對：player1 即為 Match.player1"""
    QueueManager.request_match(db, player2_id, now=now)
    result = QueueManager.request_match(db, player1_id, now=now + timedelta(seconds=1))
    assert result.status == "matched"
    return result.match_id


def commit(db, match_id, agent_id, choice, nonce, now):
    return MatchManager.submit_action(
        db, match_id, agent_id, CommitAction(hash=compute_commitment(choice, nonce)), now=now
    )


def message(db, match_id, agent_id, text, now, claim=None):
    return MatchManager.submit_action(
        db, match_id, agent_id, MessageAction(message=text, claim=claim), now=now
    )


def guess(db, match_id, agent_id, value, now):
    return MatchManager.submit_action(db, match_id, agent_id, GuessAction(guess=value), now=now)


def reveal(db, match_id, agent_id, choice, nonce, now):
    return MatchManager.submit_action(
        db, match_id, agent_id, RevealAction(choice=choice, nonce=nonce), now=now
    )


def play_to_reveal(db, match_id, p1, p2, p1_plan, p2_plan, now):
    """
    兩位玩家依計畫完成 commit、message、guess

    plan = (choice, claim, guess, nonce)
    """
    for agent_id, (choice, _, _, nonce) in ((p1, p1_plan), (p2, p2_plan)):
        assert commit(db, match_id, agent_id, choice, nonce, now).ok
    for agent_id, (_, claim, _, _) in ((p1, p1_plan), (p2, p2_plan)):
        assert message(db, match_id, agent_id, f"I picked {claim}", now, claim=claim).ok
    for agent_id, (_, _, value, _) in ((p1, p1_plan), (p2, p2_plan)):
        assert guess(db, match_id, agent_id, value, now).ok
