"""
Dictionary gate: local word list first, external lookup as a fallback.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import aiohttp

from shared.enums import LookupStatus, ValidationReason


logger = logging.getLogger(__name__)


class WordList(Protocol):
    """Anything that can answer whether a normalized word is known."""

    def has_word(self, word: str) -> bool:
        ...


@dataclass
class LookupResult:
    """Answer from the external dictionary."""
    status: LookupStatus
    definition: str | None = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND


@dataclass
class DictionaryVerdict:
    """Outcome of checking a word against every dictionary source."""
    accepted: bool
    reason: ValidationReason
    source: str | None = None  # "local" or "external"
    definition: str | None = None
    lookup_unavailable: bool = False


class ExternalDictionary:
    """
    HTTP client for a Free-Dictionary-style lookup service.

    GET {base_url}{word}: 200 means the word exists, 404 means it does
    not. Any other status, a timeout or a connection failure is reported
    as UNAVAILABLE, never as "not a word".
    """

    def __init__(self, base_url: str, timeout: float = 3.0):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout

    async def lookup(self, word: str) -> LookupResult:
        """Look up a normalized word."""
        url = f"{self.base_url}{word}"
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.get(url) as response:
                    if response.status == 200:
                        data = await response.json(content_type=None)
                        return LookupResult(LookupStatus.FOUND, _first_definition(data))
                    if response.status == 404:
                        return LookupResult(LookupStatus.NOT_FOUND)
                    logger.warning(f"Dictionary lookup for '{word}' returned HTTP {response.status}")
                    return LookupResult(LookupStatus.UNAVAILABLE)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Dictionary lookup for '{word}' failed: {e}")
            return LookupResult(LookupStatus.UNAVAILABLE)


def _first_definition(data) -> str | None:
    """Pull the first definition out of a dictionaryapi.dev style payload."""
    try:
        return data[0]["meanings"][0]["definitions"][0]["definition"]
    except (IndexError, KeyError, TypeError):
        return None


class DictionaryGate:
    """
    Decides whether a normalized word is a dictionary word.

    The local list is authoritative for hits. Words it lacks go to the
    optional external lookup; positive answers are cached for the life of
    the gate.
    """

    def __init__(self, word_list: WordList, lookup: ExternalDictionary | None = None):
        self.word_list = word_list
        self.lookup = lookup
        self._external_hits: dict[str, str | None] = {}

    async def check(self, word: str) -> DictionaryVerdict:
        if not word:
            return DictionaryVerdict(False, ValidationReason.NOT_IN_DICTIONARY)

        if self.word_list.has_word(word):
            return DictionaryVerdict(True, ValidationReason.VALID, source="local")

        if word in self._external_hits:
            return DictionaryVerdict(
                True,
                ValidationReason.VALID,
                source="external",
                definition=self._external_hits[word],
            )

        if self.lookup is None:
            return DictionaryVerdict(False, ValidationReason.NOT_IN_DICTIONARY)

        result = await self.lookup.lookup(word)

        if result.found:
            self._external_hits[word] = result.definition
            return DictionaryVerdict(
                True,
                ValidationReason.VALID,
                source="external",
                definition=result.definition,
            )

        if result.status == LookupStatus.UNAVAILABLE:
            logger.warning(f"Dictionary service unavailable, '{word}' checked against local list only")
            return DictionaryVerdict(
                False,
                ValidationReason.NOT_IN_DICTIONARY,
                lookup_unavailable=True,
            )

        return DictionaryVerdict(False, ValidationReason.NOT_IN_DICTIONARY)
