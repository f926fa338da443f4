"""Round state and turn-taking for one playthrough of a region.

A session picks a random unsolved state, waits for an answer, scores it and
moves on once every state in the region has been answered correctly.
Timed transitions (the pause after a correct answer and the clearing of an
"incorrect" message) are stored as deadlines and fired from ``tick()`` so the
UI decides when to rerun.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Set

import config
from states_data import Place, build_capital_index, place_by_id

logger = logging.getLogger(__name__)


class GameMode(Enum):
    STATES = "states"      # a highlighted state is shown; player names it
    CAPITALS = "capitals"  # a state name is shown; player picks its capital

    @property
    def label(self) -> str:
        return "Name the States" if self is GameMode.STATES else "Name the Capitals"


class AnswerNotAccepted(RuntimeError):
    """Raised when an answer arrives while input is locked or the game is over."""


@dataclass
class RoundState:
    mode: GameMode
    target: str = ""
    score: int = 0
    attempts: int = 0
    correct_count: int = 0
    solved: Set[str] = field(default_factory=set)
    missed: Set[str] = field(default_factory=set)
    completed: bool = False
    started_at: Optional[float] = None
    elapsed_ms: int = 0

    @property
    def accuracy(self) -> int:
        return int(round((self.correct_count / self.attempts) * 100)) if self.attempts else 0

    def signature(self):
        """Everything colour resolution depends on, in hashable form."""
        return (self.mode, self.target, frozenset(self.solved), frozenset(self.missed))


@dataclass(frozen=True)
class AnswerResult:
    correct: bool
    message: str


ProgressCallback = Callable[[bool], None]


class GameSession:
    def __init__(
        self,
        places: Sequence[Place],
        mode: GameMode,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        on_answer: Optional[ProgressCallback] = None,
        points_per_correct: int = config.POINTS_PER_CORRECT,
        advance_delay_ms: int = config.ADVANCE_DELAY_MS,
        message_clear_ms: int = config.MESSAGE_CLEAR_MS,
    ):
        if not places:
            raise ValueError("A game needs at least one place")
        self.places = tuple(places)
        self.mode = mode
        self._capitals: Dict[str, Place] = (
            build_capital_index(self.places) if mode is GameMode.CAPITALS else {}
        )
        self._rng = rng or random.Random()
        self._clock = clock
        self._on_answer = on_answer
        self.points_per_correct = points_per_correct
        self.advance_delay_ms = advance_delay_ms
        self.message_clear_ms = message_clear_ms

        self.state = RoundState(mode=mode)
        self.message = ""
        self.message_kind: Optional[str] = None  # "success" | "error"
        self.pending_advance_at: Optional[float] = None
        self.message_clear_at: Optional[float] = None
        self.start()

    # ---------- Lifecycle ----------
    def start(self) -> None:
        self.cancel_timers()
        self.state = RoundState(mode=self.mode, started_at=self._clock())
        self.state.target = self._rng.choice(self.places).id
        self.message = ""
        self.message_kind = None
        logger.info(f"Game started ({self.mode.value}, {len(self.places)} places), first target {self.state.target}")

    def reset(self) -> None:
        self.start()

    def cancel_timers(self) -> None:
        self.pending_advance_at = None
        self.message_clear_at = None

    # ---------- Queries ----------
    @property
    def target_place(self) -> Optional[Place]:
        return place_by_id(self.places, self.state.target) if self.state.target else None

    @property
    def accepting_answers(self) -> bool:
        return (
            not self.state.completed
            and bool(self.state.target)
            and self.pending_advance_at is None
        )

    def answer_key(self, place: Place) -> str:
        """The option value a player submits for ``place`` in this mode."""
        return place.id if self.mode is GameMode.STATES else place.capital

    def owner_of(self, answer_id: str) -> Optional[Place]:
        if self.mode is GameMode.CAPITALS:
            return self._capitals.get(answer_id)
        return place_by_id(self.places, answer_id)

    def is_solved_option(self, answer_id: str) -> bool:
        owner = self.owner_of(answer_id)
        return owner is not None and owner.id in self.state.solved

    def is_missed_option(self, answer_id: str) -> bool:
        return answer_id in self.state.missed

    def option_disabled(self, answer_id: str) -> bool:
        return (
            not self.accepting_answers
            or self.is_solved_option(answer_id)
            or self.is_missed_option(answer_id)
        )

    def elapsed_ms(self) -> int:
        if self.state.completed:
            return self.state.elapsed_ms
        if self.state.started_at is None:
            return 0
        return max(0, int(round((self._clock() - self.state.started_at) * 1000)))

    # ---------- Turn handling ----------
    def submit_answer(self, answer_id: str) -> AnswerResult:
        if not self.accepting_answers:
            raise AnswerNotAccepted(f"Answer '{answer_id}' arrived while input is locked")

        target = self.target_place
        state = self.state
        state.attempts += 1

        if self.mode is GameMode.CAPITALS:
            is_correct = answer_id == target.capital
        else:
            is_correct = answer_id == target.id

        if is_correct:
            owner = self.owner_of(answer_id) or target
            state.correct_count += 1
            state.score += self.points_per_correct
            state.solved.add(owner.id)
            state.missed.clear()
            # no target between turns; the map shows the solved colour right away
            state.target = ""
            if self.mode is GameMode.CAPITALS:
                message = f"Correct! {target.capital} is the capital of {target.name}!"
            else:
                message = f"Correct! That's {target.name}!"
            self._set_message(message, "success")
            self.message_clear_at = None
            self.pending_advance_at = self._clock() + self.advance_delay_ms / 1000.0
        else:
            state.missed.add(answer_id)
            if self.mode is GameMode.CAPITALS:
                message = f"Incorrect! Try again: which city is the capital of {target.name}?"
            else:
                message = "Incorrect! Look at the highlighted state and try again!"
            self._set_message(message, "error")
            self.message_clear_at = self._clock() + self.message_clear_ms / 1000.0

        self._report(is_correct)
        return AnswerResult(correct=is_correct, message=message)

    def advance(self) -> None:
        """Move to a random unsolved place, or finish the game if none remain."""
        self.pending_advance_at = None
        state = self.state
        remaining = [p for p in self.places if p.id not in state.solved]
        state.missed.clear()
        self._set_message("", None)
        if not remaining:
            state.target = ""
            state.completed = True
            started = state.started_at if state.started_at is not None else self._clock()
            state.elapsed_ms = max(0, int(round((self._clock() - started) * 1000)))
            logger.info(
                f"Game complete: score={state.score} attempts={state.attempts} elapsed_ms={state.elapsed_ms}"
            )
            return
        state.target = self._rng.choice(remaining).id

    def tick(self) -> bool:
        """Fire any due timers. Returns True if state changed."""
        now = self._clock()
        changed = False
        if self.message_clear_at is not None and now >= self.message_clear_at:
            self.message_clear_at = None
            if self.message_kind == "error":
                self._set_message("", None)
            changed = True
        if self.pending_advance_at is not None and now >= self.pending_advance_at:
            self.advance()
            changed = True
        return changed

    def seconds_until_next_timer(self) -> Optional[float]:
        deadlines = [d for d in (self.pending_advance_at, self.message_clear_at) if d is not None]
        if not deadlines:
            return None
        return max(0.0, min(deadlines) - self._clock())

    # ---------- Internals ----------
    def _set_message(self, message: str, kind: Optional[str]) -> None:
        self.message = message
        self.message_kind = kind

    def _report(self, is_correct: bool) -> None:
        if self._on_answer is None:
            return
        try:
            self._on_answer(is_correct)
        except Exception as e:
            # progress tracking never interrupts play
            logger.warning(f"Progress report failed: {e}")


def format_elapsed(milliseconds: int) -> str:
    """Render a duration as ``M:SS.cc`` or ``S.ccs`` for short games."""
    milliseconds = max(0, int(milliseconds))
    total_seconds = milliseconds // 1000
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    centis = (milliseconds % 1000) // 10
    if minutes > 0:
        return f"{minutes}:{seconds:02d}.{centis:02d}"
    return f"{seconds}.{centis:02d}s"
