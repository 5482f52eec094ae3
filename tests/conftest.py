"""Pytest configuration and standardized factories for ExamForge."""

import json
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from examforge.config.profile import EscalationConfig, GenerationProfile
from examforge.generation.transports import BaseGenerationTransport
from examforge.schemas.exam import ExamDocument, Question, QuestionType
from examforge.schemas.generation import (
    Attachment,
    GenerationRequest,
    TokenUsage,
    TransportResponse,
)

SOURCE_TEXT = (
    "Murtoluvut ovat lukuja, jotka esitetään kahden kokonaisluvun osamääränä. "
    "Yhteenlaskussa nimittäjät lavennetaan ensin samoiksi."
)


def make_item(n: int, **overrides: Any) -> dict[str, Any]:
    """Build one canonical raw question item as a model would emit it."""
    item: dict[str, Any] = {
        "id": n,
        "type": "multiple_choice",
        "question": f"Mikä on {n} + {n}? Laske tämä päässälaskuna.",
        "options": [str(2 * n), str(2 * n + 1), str(2 * n + 2), str(2 * n + 3)],
        "correct_answer": str(2 * n),
        "explanation": f"Kun lasketaan {n} + {n}, tulos on {2 * n}.",
    }
    item.update(overrides)
    return item


@pytest.fixture
def item_factory() -> Callable[..., dict[str, Any]]:
    """Factory to create raw question items in the canonical shape.

    Returns:
        A callable that generates raw item dictionaries.
    """
    return make_item


@pytest.fixture
def payload_factory() -> Callable[..., str]:
    """Factory to create raw model output text.

    Returns:
        A callable that serializes a document of N valid questions.
    """

    def _make_payload(
        count: int = 3,
        items: list[dict[str, Any]] | None = None,
        topic: str = "Murtoluvut",
        grade: int = 5,
        fence: bool = False,
    ) -> str:
        document = {
            "topic": topic,
            "grade": grade,
            "questions": (
                items
                if items is not None
                else [make_item(n) for n in range(1, count + 1)]
            ),
        }
        text = json.dumps(document, ensure_ascii=False, indent=2)
        if fence:
            return f"```json\n{text}\n```"
        return text

    return _make_payload


@pytest.fixture
def question_factory() -> Callable[..., Question]:
    """Factory to create valid Finnish multiple-choice Questions.

    Returns:
        A callable that generates Questions.
    """

    def _make_question(qid: int = 1, **overrides: Any) -> Question:
        data: dict[str, Any] = {
            "id": qid,
            "type": QuestionType.MULTIPLE_CHOICE,
            "question": f"Mikä on {qid} + {qid}? Laske tämä päässälaskuna.",
            "options": (
                str(2 * qid),
                str(2 * qid + 1),
                str(2 * qid + 2),
                str(2 * qid + 3),
            ),
            "correct_answer": str(2 * qid),
            "explanation": f"Kun lasketaan {qid} + {qid}, tulos on {2 * qid}.",
        }
        data.update(overrides)
        return Question(**data)

    return _make_question


@pytest.fixture
def document_factory(
    question_factory: Callable[..., Question],
) -> Callable[..., ExamDocument]:
    """Factory to create ExamDocuments of valid questions."""

    def _make_document(count: int = 3, **overrides: Any) -> ExamDocument:
        data: dict[str, Any] = {
            "questions": tuple(question_factory(n) for n in range(1, count + 1)),
            "topic": "Murtoluvut",
            "grade": 5,
        }
        data.update(overrides)
        return ExamDocument(**data)

    return _make_document


@pytest.fixture
def request_factory() -> Callable[..., GenerationRequest]:
    """Factory to create GenerationRequests with a text attachment.

    Returns:
        A callable that generates GenerationRequests.
    """

    def _make_request(
        text: str = SOURCE_TEXT,
        grade: int = 5,
        language: str = "fi",
        correlation_id: str = "req-001",
        attachments: tuple[Attachment, ...] | None = None,
    ) -> GenerationRequest:
        return GenerationRequest(
            attachments=attachments
            or (Attachment(mime_type="text/plain", text=text),),
            grade=grade,
            language=language,
            correlation_id=correlation_id,
        )

    return _make_request


@pytest.fixture
def fast_profile() -> GenerationProfile:
    """Profile with the default schedule and no backoff delay."""
    return GenerationProfile(
        escalation=EscalationConfig(
            backoff_base_seconds=0.0,
            backoff_jitter_seconds=0.0,
        )
    )


ScriptedResult = str | TransportResponse | BaseException


class FakeTransport(BaseGenerationTransport):
    """A scripted transport for testing purposes.

    Each call pops the next scripted result: strings become responses with
    fixed token counters, TransportResponse instances are returned as they
    are, and exceptions are raised. Provides 'call_history' to inspect the
    arguments of every call, removing the need for mocks/spies.
    """

    def __init__(
        self,
        script: Sequence[ScriptedResult] = (),
        usage: TokenUsage | None = None,
        name: str = "fake-model",
    ):
        self.script = list(script)
        self.usage = usage or TokenUsage(
            prompt_tokens=1000, completion_tokens=500, total_tokens=1500
        )
        self.name = name
        self.call_history: list[dict[str, Any]] = []
        self.entered = False

    @property
    def model_name(self) -> str:
        return self.name

    async def __aenter__(self) -> "FakeTransport":
        self.entered = True
        return self

    async def __aexit__(self, *_: Any) -> None:
        self.entered = False

    async def call(
        self,
        prompt: str,
        attachments: Sequence[Attachment],
        temperature: float,
    ) -> TransportResponse:
        self.call_history.append(
            {
                "prompt": prompt,
                "attachments": tuple(attachments),
                "temperature": temperature,
            }
        )
        if not self.script:
            raise AssertionError("FakeTransport called more often than scripted")

        result = self.script.pop(0)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, TransportResponse):
            return result
        return TransportResponse(text=result, usage=self.usage, finish_reason="stop")

    @property
    def temperatures(self) -> list[float]:
        return [call["temperature"] for call in self.call_history]


@pytest.fixture
def fake_transport_factory() -> Callable[..., FakeTransport]:
    """Factory to create scripted FakeTransport instances."""

    def _make_transport(
        script: Sequence[ScriptedResult] = (),
        usage: TokenUsage | None = None,
    ) -> FakeTransport:
        return FakeTransport(script=script, usage=usage)

    return _make_transport


class SleepRecorder:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    """Fixture providing a fresh SleepRecorder."""
    return SleepRecorder()
