"""Jarwik services module.

Intent classification, time resolution, scheduling and action dispatch.
Imports are lazy so that importing one service does not pull in the Google
client libraries or httpx.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS: dict[str, tuple[str, str]] = {
    # Intents
    "Intent": ("jarwik.services.intent", "Intent"),
    "IntentResult": ("jarwik.services.intent", "IntentResult"),
    "IntentSource": ("jarwik.services.intent", "IntentSource"),
    # Classification
    "LightweightParser": ("jarwik.services.parser", "LightweightParser"),
    "FallbackClassifier": ("jarwik.services.llm_parser", "FallbackClassifier"),
    "ChatResponder": ("jarwik.services.llm_parser", "ChatResponder"),
    "LLMClient": ("jarwik.services.llm_client", "LLMClient"),
    "build_llm_client": ("jarwik.services.llm_client", "build_llm_client"),
    # Time
    "TimeResolver": ("jarwik.services.timezone", "TimeResolver"),
    # Scheduling
    "SchedulingEngine": ("jarwik.services.scheduling", "SchedulingEngine"),
    "SchedulingPreferences": ("jarwik.services.scheduling", "SchedulingPreferences"),
    "SmartScheduleRequest": ("jarwik.services.scheduling", "SmartScheduleRequest"),
    "TimeRange": ("jarwik.services.scheduling", "TimeRange"),
    "WorkingHours": ("jarwik.services.scheduling", "WorkingHours"),
    # Accounts
    "Permissions": ("jarwik.services.permissions", "Permissions"),
    "JsonAccountStore": ("jarwik.services.permissions", "JsonAccountStore"),
    "CachedAccountStore": ("jarwik.services.permissions", "CachedAccountStore"),
    "TTLCache": ("jarwik.services.cache", "TTLCache"),
    # Dispatch
    "ActionDispatcher": ("jarwik.services.dispatcher", "ActionDispatcher"),
    "MessageProcessor": ("jarwik.services.processor", "MessageProcessor"),
    "ProcessResult": ("jarwik.services.processor", "ProcessResult"),
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = _EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(_EXPORTS.keys()))
