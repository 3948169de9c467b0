"""
Game engine package.
"""
from .words import normalize, first_letter, last_letter
from .dictionary import DictionaryGate, DictionaryVerdict, ExternalDictionary, LookupResult
from .rules import WordRules, ValidationResult
from .scoring import ScoreBreakdown, score_word
from .scheduler import TurnScheduler, TurnClock, TurnTicket
from .room import RoomStateMachine, Decision, JoinPlan, StartPlan, TurnOutcome, LeavePlan
from .solo import SoloSession, SoloStats, SoloTurnResult

__all__ = [
    "normalize",
    "first_letter",
    "last_letter",
    "DictionaryGate",
    "DictionaryVerdict",
    "ExternalDictionary",
    "LookupResult",
    "WordRules",
    "ValidationResult",
    "ScoreBreakdown",
    "score_word",
    "TurnScheduler",
    "TurnClock",
    "TurnTicket",
    "RoomStateMachine",
    "Decision",
    "JoinPlan",
    "StartPlan",
    "TurnOutcome",
    "LeavePlan",
    "SoloSession",
    "SoloStats",
    "SoloTurnResult",
]
