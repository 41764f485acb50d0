"""Admission decisions for the main group and intro channel."""

from introgate.gate.engine import GateCaches, GatekeepEngine, GatePolicy
from introgate.gate.events import ChatEvent, EventKind, Participant
from introgate.gate.spaces import SpaceRegistry
from introgate.gate.validator import IntroRules, is_valid_intro

__all__ = [
    "ChatEvent",
    "EventKind",
    "GateCaches",
    "GatePolicy",
    "GatekeepEngine",
    "IntroRules",
    "Participant",
    "SpaceRegistry",
    "is_valid_intro",
]
