from datetime import timedelta

from core.exceptions import ErrorKind
from core.queue_manager import QueueManager
from models import EventLog, Match, MatchPhase, QueueEntry

from conftest import T0
from helpers import commit, create_match


def test_queue_then_match(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")

    first = QueueManager.request_match(db, a, now=T0)
    assert first.ok and first.status == "queued"
    assert QueueManager.queue_length(db) == 1

    second = QueueManager.request_match(db, b, now=T0 + timedelta(seconds=5))
    assert second.status == "matched"
    assert second.opponent_name == "alice"
    assert second.phase == MatchPhase.COMMIT
    assert QueueManager.queue_length(db) == 0

    # 兩位玩家之後的呼叫都回到同一場對局
    again_a = QueueManager.request_match(db, a, now=T0 + timedelta(seconds=6))
    again_b = QueueManager.request_match(db, b, now=T0 + timedelta(seconds=6))
    assert again_a.match_id == second.match_id
    assert again_a.opponent_name == "bob"
    assert again_b.match_id == second.match_id
    assert db.query(Match).count() == 1


def test_new_match_layout(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    QueueManager.request_match(db, a, now=T0)
    result = QueueManager.request_match(db, b, now=T0)

    match = db.query(Match).filter(Match.id == result.match_id).one()
    assert match.player1_id == b
    assert match.player2_id == a
    assert match.phase == MatchPhase.COMMIT
    assert match.phase_deadline == T0 + timedelta(seconds=60)
    assert match.winner is None
    assert db.query(EventLog).filter(EventLog.event_type == "MATCH_CREATED").count() == 1


def test_never_paired_with_self(db, make_agent):
    a = make_agent("alice")

    assert QueueManager.request_match(db, a, now=T0).status == "queued"
    assert QueueManager.request_match(db, a, now=T0 + timedelta(seconds=1)).status == "queued"
    assert QueueManager.queue_length(db) == 1
    assert db.query(Match).count() == 0


def test_oldest_waiting_agent_is_paired_first(db, make_agent):
    a, b, c = make_agent("alice"), make_agent("bob"), make_agent("carol")
    db.add(QueueEntry(agent_id=a, joined_at=T0 + timedelta(seconds=10)))
    db.add(QueueEntry(agent_id=b, joined_at=T0))
    db.commit()

    result = QueueManager.request_match(db, c, now=T0 + timedelta(seconds=20))
    assert result.opponent_name == "bob"

    remaining = db.query(QueueEntry).all()
    assert [entry.agent_id for entry in remaining] == [a]


def test_unknown_agent(db):
    result = QueueManager.request_match(db, "missing", now=T0)
    assert not result.ok
    assert result.error == ErrorKind.NOT_FOUND


def test_stale_queue_entry_of_busy_agent_is_discarded(db, make_agent):
    a, b, c = make_agent("alice"), make_agent("bob"), make_agent("carol")
    create_match(db, a, b, T0)
    db.add(QueueEntry(agent_id=a, joined_at=T0))
    db.commit()

    result = QueueManager.request_match(db, c, now=T0 + timedelta(seconds=5))
    assert result.status == "queued"
    assert [entry.agent_id for entry in db.query(QueueEntry).all()] == [c]


def test_expired_active_match_is_forfeited_before_requeue(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)
    commit(db, match_id, b, 1, "nb", T0)

    result = QueueManager.request_match(db, a, now=T0 + timedelta(minutes=5))
    assert result.status == "queued"

    db.expire_all()
    match = db.query(Match).filter(Match.id == match_id).one()
    assert match.phase == MatchPhase.FORFEIT
    assert match.winner_agent_id == b
