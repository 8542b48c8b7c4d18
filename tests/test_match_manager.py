from datetime import timedelta

from core.actions import CommitAction, GuessAction, MessageAction
from core.exceptions import ErrorKind
from core.match_manager import MatchManager
from models import Agent, EventLog, Match, MatchPhase, Resolution, Winner
from services.commitment_service import compute_commitment

from conftest import T0
from helpers import commit, create_match, guess, message, play_to_reveal, reveal


def _match(db, match_id):
    db.expire_all()
    return db.query(Match).filter(Match.id == match_id).one()


def _agent(db, agent_id):
    db.expire_all()
    return db.query(Agent).filter(Agent.id == agent_id).one()


def test_phases_advance_when_both_submit(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)

    result = commit(db, match_id, a, 1, "na", T0)
    assert result.ok and result.phase == MatchPhase.COMMIT

    result = commit(db, match_id, b, 0, "nb", T0)
    assert result.ok and result.phase == MatchPhase.MESSAGE

    assert message(db, match_id, a, "hi", T0).phase == MatchPhase.MESSAGE
    assert message(db, match_id, b, "hey", T0).phase == MatchPhase.GUESS
    assert guess(db, match_id, b, 1, T0).phase == MatchPhase.GUESS
    assert guess(db, match_id, a, 0, T0).phase == MatchPhase.REVEAL


def test_phase_advance_resets_deadline(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)
    later = T0 + timedelta(seconds=30)

    commit(db, match_id, a, 1, "na", later)
    commit(db, match_id, b, 1, "nb", later)

    match = _match(db, match_id)
    assert match.phase == MatchPhase.MESSAGE
    assert match.phase_deadline == later + timedelta(seconds=60)


def test_truthful_draw_scenario(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)

    play_to_reveal(db, match_id, a, b, (1, 1, 1, "na"), (1, 1, 1, "nb"), T0)
    assert reveal(db, match_id, a, 1, "na", T0).ok
    result = reveal(db, match_id, b, 1, "nb", T0)
    assert result.ok and result.phase == MatchPhase.COMPLETE

    match = _match(db, match_id)
    assert match.winner == Winner.DRAW
    assert match.resolution == Resolution.PLAYED
    assert match.player1_rating_delta == 0
    assert match.player2_rating_delta == 0
    assert match.completed_at is not None

    alice = _agent(db, a)
    assert alice.draws == 1 and alice.games_played == 1 and alice.rating == 1200
    assert alice.last_active_at == T0


def test_liar_wins_scenario(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)

    # A 選 1 宣稱 0（說謊），B 選 0 宣稱 0；A 猜 0（對），B 猜 0（錯）
    play_to_reveal(db, match_id, a, b, (1, 0, 0, "na"), (0, 0, 0, "nb"), T0)
    reveal(db, match_id, b, 0, "nb", T0)
    reveal(db, match_id, a, 1, "na", T0)

    match = _match(db, match_id)
    assert match.phase == MatchPhase.COMPLETE
    assert match.winner == Winner.PLAYER1
    assert match.winner_agent_id == a
    assert match.player1_rating_delta == 16
    assert match.player2_rating_delta == -16

    alice, bob = _agent(db, a), _agent(db, b)
    assert (alice.rating, alice.wins) == (1216, 1)
    assert (bob.rating, bob.losses) == (1184, 1)


def test_reveal_mismatch_is_integrity_violation(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)
    play_to_reveal(db, match_id, a, b, (1, 1, 0, "nonceX"), (0, 0, 1, "nb"), T0)

    # 承諾是 sha256("1:nonceX")，揭示 0
    result = reveal(db, match_id, a, 0, "nonceX", T0)
    assert not result.ok
    assert result.error == ErrorKind.INTEGRITY_VIOLATION

    match = _match(db, match_id)
    assert match.phase == MatchPhase.COMPLETE
    assert match.winner == Winner.PLAYER2
    assert match.resolution == Resolution.INTEGRITY_VIOLATION
    assert match.player1_choice is None
    assert match.player1_rating_delta == -16
    assert match.player2_rating_delta == 16
    assert db.query(EventLog).filter(EventLog.event_type == "INTEGRITY_VIOLATION").count() == 1


def test_integrity_violation_after_opponent_revealed(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)
    play_to_reveal(db, match_id, a, b, (1, 1, 0, "na"), (0, 0, 1, "nb"), T0)

    assert reveal(db, match_id, a, 1, "na", T0).ok
    result = reveal(db, match_id, b, 1, "nb", T0)
    assert result.error == ErrorKind.INTEGRITY_VIOLATION
    assert _match(db, match_id).winner == Winner.PLAYER1


def test_second_submission_rejected_without_change(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)
    commit(db, match_id, a, 1, "na", T0)
    before = _match(db, match_id)
    version, stored = before.state_version, before.player1_commit

    result = commit(db, match_id, a, 0, "other", T0)
    assert result.error == ErrorKind.ALREADY_SUBMITTED

    after = _match(db, match_id)
    assert after.state_version == version
    assert after.player1_commit == stored


def test_wrong_phase_rejected(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)

    result = guess(db, match_id, a, 1, T0)
    assert result.error == ErrorKind.INVALID_PHASE
    assert _match(db, match_id).player1_guess is None


def test_non_participant_rejected(db, make_agent):
    a, b, c = make_agent("alice"), make_agent("bob"), make_agent("carol")
    match_id = create_match(db, a, b, T0)

    result = commit(db, match_id, c, 1, "nc", T0)
    assert result.error == ErrorKind.NOT_A_PARTICIPANT


def test_unknown_match(db, make_agent):
    a = make_agent("alice")
    result = commit(db, "missing", a, 1, "n", T0)
    assert result.error == ErrorKind.NOT_FOUND


def test_out_of_domain_values_rejected(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)

    bad_hash = MatchManager.submit_action(db, match_id, a, CommitAction(hash="not-a-hash"), now=T0)
    assert bad_hash.error == ErrorKind.INVALID_INPUT

    commit(db, match_id, a, 1, "na", T0)
    commit(db, match_id, b, 1, "nb", T0)

    too_long = MatchManager.submit_action(
        db, match_id, a, MessageAction(message="x" * 501), now=T0
    )
    assert too_long.error == ErrorKind.INVALID_INPUT

    bad_claim = MatchManager.submit_action(
        db, match_id, a, MessageAction(message="hi", claim=2), now=T0
    )
    assert bad_claim.error == ErrorKind.INVALID_INPUT
    assert _match(db, match_id).player1_message is None

    message(db, match_id, a, "x" * 500, T0)
    message(db, match_id, b, "", T0)

    bad_guess = MatchManager.submit_action(db, match_id, a, GuessAction(guess=2), now=T0)
    assert bad_guess.error == ErrorKind.INVALID_INPUT
    bool_guess = MatchManager.submit_action(db, match_id, a, GuessAction(guess=True), now=T0)
    assert bool_guess.error == ErrorKind.INVALID_INPUT


def test_late_submission_forfeits(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)
    commit(db, match_id, a, 1, "na", T0)

    late = T0 + timedelta(seconds=120)
    result = commit(db, match_id, b, 1, "nb", late)
    assert result.error == ErrorKind.INVALID_PHASE
    assert result.phase == MatchPhase.FORFEIT

    match = _match(db, match_id)
    assert match.phase == MatchPhase.FORFEIT
    assert match.winner == Winner.PLAYER1
    assert match.player2_commit is None


def test_terminal_match_is_absorbing(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)
    play_to_reveal(db, match_id, a, b, (1, 1, 1, "na"), (1, 1, 1, "nb"), T0)
    reveal(db, match_id, a, 1, "na", T0)
    reveal(db, match_id, b, 1, "nb", T0)
    version = _match(db, match_id).state_version

    result = reveal(db, match_id, b, 1, "nb", T0)
    assert result.error == ErrorKind.INVALID_PHASE
    assert _match(db, match_id).state_version == version


def test_commit_hash_stored_lowercase(db, make_agent):
    a, b = make_agent("alice"), make_agent("bob")
    match_id = create_match(db, a, b, T0)
    digest = compute_commitment(1, "na")

    MatchManager.submit_action(db, match_id, a, CommitAction(hash=digest.upper()), now=T0)
    assert _match(db, match_id).player1_commit == digest
