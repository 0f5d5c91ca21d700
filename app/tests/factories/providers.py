"""Fake transport providers and escalators for notification tests.

Each fake records every call and answers from a script of results (or
exceptions); once the script runs out the last entry repeats.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

from infrastructure.operations import OperationResult
from modules.notifications.escalation import EscalationEvent

Outcome = Union[OperationResult, Exception]


class ScriptedProvider:
    """Base for fakes returning scripted outcomes."""

    def __init__(self, outcomes: Optional[Sequence[Outcome]] = None):
        self.outcomes: List[Outcome] = list(outcomes or [])
        self.calls: List[Dict[str, Any]] = []

    def script(self, *outcomes: Outcome) -> None:
        self.outcomes = list(outcomes)

    def _next(self, default: OperationResult) -> OperationResult:
        if not self.outcomes:
            return default
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeEmailProvider(ScriptedProvider):
    def send(self, address: str, subject: str, body: str) -> OperationResult:
        self.calls.append({"address": address, "subject": subject, "body": body})
        return self._next(OperationResult.success(data={"message_id": "email-1"}))


class FakeSmsProvider(ScriptedProvider):
    def send(self, e164_number: str, text: str) -> OperationResult:
        self.calls.append({"e164_number": e164_number, "text": text})
        return self._next(OperationResult.success(data={"message_id": "sms-1"}))


class FakePushProvider(ScriptedProvider):
    def send(
        self, tokens: List[str], title: str, body: str, data: Dict[str, Any]
    ) -> OperationResult:
        self.calls.append(
            {"tokens": list(tokens), "title": title, "body": body, "data": data}
        )
        return self._next(
            OperationResult.success(
                data={"delivered": len(tokens), "invalid_tokens": []}
            )
        )


class RecordingEscalator:
    def __init__(self):
        self.events: List[EscalationEvent] = []

    def escalate(self, event: EscalationEvent) -> None:
        self.events.append(event)


def make_fake_providers() -> Dict[str, ScriptedProvider]:
    return {
        "email": FakeEmailProvider(),
        "sms": FakeSmsProvider(),
        "push": FakePushProvider(),
    }
