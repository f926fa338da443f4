import random

import pytest

from game_session import AnswerNotAccepted, GameMode, GameSession, format_elapsed
from states_data import DuplicateCapitalError, Place, get_places_by_region

from conftest import FirstChoice


def make_game(places, clock, mode=GameMode.STATES, rng=None, on_answer=None):
    return GameSession(places, mode, rng=rng or FirstChoice(), clock=clock, on_answer=on_answer)


def test_start_picks_target_and_records_start(abc, clock):
    game = make_game(abc, clock)
    assert game.state.target == "A"
    assert game.state.started_at == clock.now
    assert game.state.score == 0
    assert game.state.attempts == 0
    assert not game.state.completed
    assert game.accepting_answers


def test_empty_catalog_is_rejected(clock):
    with pytest.raises(ValueError):
        make_game((), clock)


def test_region_mode_scenario(abc, clock):
    game = make_game(abc, clock)

    result = game.submit_answer("B")
    assert not result.correct
    assert "try again" in result.message
    assert game.state.attempts == 1
    assert game.state.missed == {"B"}
    assert game.state.target == "A"

    result = game.submit_answer("A")
    assert result.correct
    assert "Alpha" in result.message
    assert game.state.attempts == 2
    assert game.state.correct_count == 1
    assert game.state.score == 10
    assert game.state.solved == {"A"}
    assert game.state.missed == set()

    game.advance()
    assert game.state.target in {"B", "C"}

    for _ in range(2):
        game.submit_answer(game.state.target)
        game.advance()

    assert game.state.completed
    assert game.state.score == 30
    assert game.state.attempts == 4
    assert game.state.target == ""


def test_capital_mode_scenario(clock):
    northeast = get_places_by_region("northeast")
    ny = next(p for p in northeast if p.id == "NY")
    game = GameSession(northeast, GameMode.CAPITALS, rng=FirstChoice(), clock=clock)
    game.state.target = ny.id

    result = game.submit_answer("Boston")
    assert not result.correct
    assert game.state.missed == {"Boston"}
    assert "MA" not in game.state.missed
    assert game.state.target == "NY"

    result = game.submit_answer("Albany")
    assert result.correct
    assert "Albany" in result.message and "New York" in result.message
    assert game.state.solved == {"NY"}
    assert game.is_solved_option("Albany")
    assert not game.is_solved_option("Boston")


def test_capital_mode_rejects_shared_capitals(clock):
    places = (Place("X", "Xland", "Springfield", "XX"), Place("Y", "Yland", "Springfield", "YY"))
    with pytest.raises(DuplicateCapitalError):
        GameSession(places, GameMode.CAPITALS, clock=clock)


def test_repeated_wrong_answer_is_recorded_once(abc, clock):
    game = make_game(abc, clock)
    game.submit_answer("C")
    game.submit_answer("C")
    assert game.state.missed == {"C"}
    assert game.state.attempts == 2
    assert game.state.solved == set()
    assert game.state.target == "A"


def test_correct_answer_clears_missed_and_locks_input(abc, clock):
    game = make_game(abc, clock)
    game.submit_answer("B")
    game.submit_answer("C")
    game.submit_answer("A")
    assert game.state.missed == set()
    assert not game.accepting_answers
    with pytest.raises(AnswerNotAccepted):
        game.submit_answer("B")
    assert game.state.attempts == 3


def test_invariants_hold_for_random_answer_sequences(clock):
    places = get_places_by_region("midwest")
    rng = random.Random(7)
    game = GameSession(places, GameMode.STATES, rng=random.Random(11), clock=clock)
    wrong = 0
    while not game.state.completed:
        if game.pending_advance_at is not None:
            game.advance()
            continue
        answer = rng.choice(places).id
        if not game.submit_answer(answer).correct:
            wrong += 1
        state = game.state
        assert state.attempts == state.correct_count + wrong
        assert state.correct_count == len(state.solved)
        assert state.attempts >= state.correct_count
    assert game.state.score == 10 * len(places)
    assert len(game.state.solved) == len(places)


def test_perfect_game_scores_every_place(clock):
    places = get_places_by_region("southwest")
    game = GameSession(places, GameMode.CAPITALS, rng=random.Random(3), clock=clock)
    seen = []
    while not game.state.completed:
        seen.append(game.state.target)
        game.submit_answer(game.target_place.capital)
        game.advance()
    assert sorted(seen) == sorted(p.id for p in places)
    assert game.state.score == 40
    assert game.state.attempts == 4
    assert game.state.accuracy == 100


def test_advance_waits_for_the_feedback_delay(abc, clock):
    game = make_game(abc, clock)
    game.submit_answer("A")
    assert game.seconds_until_next_timer() == pytest.approx(1.5)

    clock.advance(1.0)
    assert not game.tick()
    assert game.state.target == ""

    clock.advance(0.6)
    assert game.tick()
    assert game.state.target == "B"
    assert game.message == ""
    assert game.accepting_answers
    assert game.seconds_until_next_timer() is None


def test_incorrect_message_clears_after_delay(abc, clock):
    game = make_game(abc, clock)
    game.submit_answer("B")
    assert game.message_kind == "error"
    clock.advance(2.9)
    game.tick()
    assert game.message
    clock.advance(0.2)
    assert game.tick()
    assert game.message == ""
    assert game.state.missed == {"B"}


def test_reset_cancels_pending_timers(abc, clock):
    game = make_game(abc, clock)
    game.submit_answer("A")
    game.reset()
    assert game.pending_advance_at is None
    assert game.message_clear_at is None
    assert game.state.solved == set()
    assert game.state.score == 0
    clock.advance(5)
    assert not game.tick()
    assert game.state.target == "A"


def test_completion_records_elapsed_time(clock):
    place = Place("A", "Alpha", "Aville", "AA")
    game = GameSession((place,), GameMode.STATES, clock=clock)
    clock.advance(12.345)
    game.submit_answer("A")
    clock.advance(1.5)
    game.tick()
    assert game.state.completed
    assert game.state.elapsed_ms == 13845
    assert game.elapsed_ms() == 13845
    with pytest.raises(AnswerNotAccepted):
        game.submit_answer("A")


def test_answers_are_reported_and_failures_swallowed(abc, clock):
    reported = []
    game = make_game(abc, clock, on_answer=reported.append)
    game.submit_answer("B")
    game.submit_answer("A")
    assert reported == [False, True]

    def broken(is_correct):
        raise ConnectionError("offline")

    game = make_game(abc, clock, on_answer=broken)
    assert game.submit_answer("A").correct
    assert game.state.score == 10


def test_option_disabled(abc, clock):
    game = make_game(abc, clock)
    game.submit_answer("B")
    assert game.option_disabled("B")
    assert not game.option_disabled("C")
    game.submit_answer("A")
    assert game.option_disabled("C")
    game.advance()
    assert game.option_disabled("A")
    assert not game.option_disabled("C")


@pytest.mark.parametrize("ms, expected", [
    (0, "0.00s"),
    (4210, "4.21s"),
    (65432, "1:05.43"),
    (600000, "10:00.00"),
])
def test_format_elapsed(ms, expected):
    assert format_elapsed(ms) == expected
