"""
Single-player word chain against the clock.
"""
import logging
import random
from dataclasses import dataclass, field

from shared.constants import SOLO_TIME_LIMIT, SOLO_FILLER_WORDS, SEED_WORDS

from .rules import WordRules, ValidationResult
from .scoring import ScoreBreakdown, score_word
from .words import normalize, last_letter


logger = logging.getLogger(__name__)


@dataclass
class SoloStats:
    """Running totals for one solo session."""
    score: int = 0
    words_played: int = 0
    total_time_ms: int = 0
    longest_word: str = ""
    current_streak: int = 0
    best_streak: int = 0

    @property
    def average_time_ms(self) -> int:
        if not self.words_played:
            return 0
        return self.total_time_ms // self.words_played

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "words_played": self.words_played,
            "average_time_ms": self.average_time_ms,
            "longest_word": self.longest_word,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
        }


@dataclass
class SoloTurnResult:
    """Outcome of one solo turn."""
    validation: ValidationResult | None
    score: ScoreBreakdown | None = None
    filler_word: str | None = None  # word played for the player after a miss
    timed_out: bool = False

    @property
    def points(self) -> int:
        return self.score.total if self.score else 0

    def to_dict(self) -> dict:
        return {
            "validation": self.validation.to_dict() if self.validation else None,
            "score": self.score.to_dict() if self.score else None,
            "points": self.points,
            "filler_word": self.filler_word,
            "timed_out": self.timed_out,
        }


class SoloSession:
    """
    A solo run: chain words off the current word until the player stops.

    An accepted word grows the streak and earns a streak bonus on top of
    the usual length and speed points. A rejected word or a timeout breaks
    the streak and play continues from a random unused filler word.
    """

    def __init__(
        self,
        user_id: str,
        rules: WordRules,
        time_limit: int = SOLO_TIME_LIMIT,
        is_guest: bool = False,
        rng: random.Random | None = None,
        filler_words: list[str] | None = None
    ):
        self.user_id = user_id
        self.rules = rules
        self.time_limit = time_limit
        self.is_guest = is_guest
        self._random = rng or random.Random()
        self._filler_words = filler_words or SOLO_FILLER_WORDS

        self.current_word: str | None = None
        self.used_words: set[str] = set()
        self.stats = SoloStats()
        self.is_over = False
        self.last_result: SoloTurnResult | None = None

    @property
    def required_start_char(self) -> str:
        return last_letter(self.current_word)

    async def submit(self, raw_word: str, time_taken_ms: int) -> SoloTurnResult:
        """Judge a word and update the session."""
        validation = await self.rules.validate(self.current_word, self.used_words, raw_word)

        if not validation.valid:
            self.stats.current_streak = 0
            filler = self._play_filler()
            self.last_result = SoloTurnResult(validation=validation, filler_word=filler)
            return self.last_result

        word = validation.normalized_word
        score = score_word(
            len(word),
            time_taken_ms,
            self.time_limit,
            streak=self.stats.current_streak,
        )

        stats = self.stats
        stats.score += score.total
        stats.words_played += 1
        stats.total_time_ms += max(0, time_taken_ms)
        stats.current_streak += 1
        stats.best_streak = max(stats.best_streak, stats.current_streak)
        if len(word) > len(stats.longest_word):
            stats.longest_word = word

        self.used_words.add(word)
        self.current_word = word

        self.last_result = SoloTurnResult(validation=validation, score=score)
        return self.last_result

    def timeout(self) -> SoloTurnResult:
        """The player ran out of time."""
        self.stats.current_streak = 0
        filler = self._play_filler()
        self.last_result = SoloTurnResult(validation=None, filler_word=filler, timed_out=True)
        return self.last_result

    def end(self) -> SoloStats:
        self.is_over = True
        logger.info(
            f"Solo session for {self.user_id} ended: {self.stats.score} points, "
            f"best streak {self.stats.best_streak}"
        )
        return self.stats

    def _play_filler(self) -> str | None:
        unused = [w for w in self._filler_words if normalize(w) not in self.used_words]
        if not unused:
            unused = [w for w in SEED_WORDS if normalize(w) not in self.used_words]
        if not unused:
            # Every word is spent: the next word is unconstrained
            self.current_word = None
            return None

        word = normalize(self._random.choice(unused))
        self.used_words.add(word)
        self.current_word = word
        return word

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "current_word": self.current_word,
            "required_start_char": self.required_start_char,
            "time_limit": self.time_limit,
            "used_words": sorted(self.used_words),
            "stats": self.stats.to_dict(),
            "is_over": self.is_over,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
