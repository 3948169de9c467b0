"""
Word chain validation.

Checks run in a fixed order and stop at the first failure:
empty word, chain rule, duplicate, dictionary.
"""
from dataclasses import dataclass
from typing import Iterable

from shared.enums import ValidationReason

from .words import normalize, last_letter
from .dictionary import DictionaryGate


_MESSAGES = {
    ValidationReason.VALID: "",
    ValidationReason.EMPTY_WORD: "Please enter a word",
    ValidationReason.CHAIN_MISMATCH: "Word must start with '{char}'",
    ValidationReason.DUPLICATE_WORD: "Word already used in this room",
    ValidationReason.NOT_IN_DICTIONARY: "Word not found in dictionary",
}


@dataclass
class ValidationResult:
    """Result of judging a submitted word."""
    valid: bool
    reason: ValidationReason
    normalized_word: str = ""
    required_start_char: str = ""
    message: str = ""
    definition: str | None = None
    lookup_unavailable: bool = False

    @classmethod
    def success(
        cls,
        normalized_word: str,
        required_start_char: str = "",
        definition: str | None = None
    ) -> "ValidationResult":
        return cls(
            valid=True,
            reason=ValidationReason.VALID,
            normalized_word=normalized_word,
            required_start_char=required_start_char,
            definition=definition,
        )

    @classmethod
    def failure(
        cls,
        reason: ValidationReason,
        normalized_word: str = "",
        required_start_char: str = ""
    ) -> "ValidationResult":
        message = _MESSAGES[reason].format(char=required_start_char.upper())
        return cls(
            valid=False,
            reason=reason,
            normalized_word=normalized_word,
            required_start_char=required_start_char,
            message=message,
        )

    def to_dict(self) -> dict:
        return {
            "is_valid": self.valid,
            "reason": self.reason.value,
            "normalized_word": self.normalized_word,
            "required_start_char": self.required_start_char,
            "message": self.message,
            "definition": self.definition,
        }


class WordRules:
    """
    Chain and duplicate validator in front of the dictionary gate.
    """

    def __init__(self, dictionary: DictionaryGate):
        self.dictionary = dictionary

    @staticmethod
    def required_start_char(last_word: str | None) -> str:
        """Letter the next word must start with, or "" if unconstrained."""
        return last_letter(last_word)

    def check_chain(
        self,
        last_word: str | None,
        used_words: Iterable[str],
        raw_word: str
    ) -> ValidationResult | None:
        """
        Run the local checks.

        Args:
            last_word: The room's last accepted word, if any
            used_words: Normalized words of the room's valid moves
            raw_word: The submitted text

        Returns:
            A failure result, or None if the word should go to the dictionary
        """
        normalized = normalize(raw_word)
        required = self.required_start_char(last_word)

        if not normalized:
            return ValidationResult.failure(ValidationReason.EMPTY_WORD, normalized, required)

        # An empty previous word imposes no constraint
        if required and normalized[0] != required:
            return ValidationResult.failure(ValidationReason.CHAIN_MISMATCH, normalized, required)

        if normalized in set(used_words):
            return ValidationResult.failure(ValidationReason.DUPLICATE_WORD, normalized, required)

        return None

    async def validate(
        self,
        last_word: str | None,
        used_words: Iterable[str],
        raw_word: str
    ) -> ValidationResult:
        """Full validation: local checks, then the dictionary gate."""
        failure = self.check_chain(last_word, used_words, raw_word)
        if failure is not None:
            return failure

        normalized = normalize(raw_word)
        required = self.required_start_char(last_word)

        verdict = await self.dictionary.check(normalized)
        if not verdict.accepted:
            result = ValidationResult.failure(verdict.reason, normalized, required)
            result.lookup_unavailable = verdict.lookup_unavailable
            return result

        return ValidationResult.success(normalized, required, verdict.definition)
