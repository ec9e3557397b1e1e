"""Context assembly for grounded replies."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID

from ..business.models import BusinessRecords, BusinessSnapshot
from ..business.repository import BusinessRepository
from ..config import ReplySettings
from ..conversations.models import StoredMessage
from ..errors import ContextUnavailableError
from .prompts import StyleDirectiveStore, render_system_prompt

T = TypeVar("T")


@dataclass(frozen=True)
class ChatTurn:
    role: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class GroundingContext:
    system_prompt: str
    history: list[ChatTurn] = field(default_factory=list)
    records: BusinessRecords = field(default_factory=BusinessRecords)

    def usage(self, business_name: str) -> dict[str, Any]:
        return {
            "business": business_name,
            **self.records.counts(),
            "conversation_history_count": len(self.history),
        }


def build_history(messages: Sequence[StoredMessage]) -> list[ChatTurn]:
    """Map stored messages (oldest-first) onto alternating chat turns.

    Inbound rows become ``user`` turns and AI-generated outbound rows become
    ``assistant`` turns. Outbound rows that were not AI-generated (fallbacks,
    handoff notices, audio) and empty rows are left out. Consecutive turns of
    the same role are merged so roles strictly alternate.
    """

    turns: list[ChatTurn] = []
    for message in messages:
        text = (message.content or "").strip()
        if not text:
            continue
        if message.direction == "inbound":
            role = "user"
        elif message.direction == "outbound" and message.ai_response_generated:
            role = "assistant"
        else:
            continue
        turns = _append_turn(turns, ChatTurn(role, text))
    return turns


def _append_turn(turns: list[ChatTurn], turn: ChatTurn) -> list[ChatTurn]:
    if turns and turns[-1].role == turn.role:
        merged = ChatTurn(turn.role, f"{turns[-1].content}\n{turn.content}")
        return [*turns[:-1], merged]
    return [*turns, turn]


def build_turns(context: GroundingContext, user_text: str) -> list[ChatTurn]:
    """Return ``[system, *history, user]`` for the completion backend."""

    turns = [ChatTurn("system", context.system_prompt)]
    for turn in context.history:
        turns = _append_turn(turns, turn)
    return _append_turn(turns, ChatTurn("user", user_text))


class ContextAssembler:
    """Load grounding records and render the system prompt for a reply.

    Catalog, policy and promotion reads are issued concurrently and joined
    under a single group timeout.
    """

    def __init__(
        self,
        businesses: BusinessRepository,
        history_loader: Callable[[UUID, int], list[StoredMessage]] | None = None,
        *,
        history_limit: int = 10,
        timeout: float = 10.0,
        max_workers: int = 6,
        styles: StyleDirectiveStore | None = None,
    ) -> None:
        self._businesses = businesses
        self._history_loader = history_loader
        self.history_limit = history_limit
        self.timeout = timeout
        self._styles = styles or StyleDirectiveStore()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="context"
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def load_records(self, business_id: UUID, now: datetime) -> BusinessRecords:
        futures: dict[str, Future[Any]] = {
            "catalog": self._executor.submit(self._businesses.list_active_products, business_id),
            "policies": self._executor.submit(self._businesses.list_active_policies, business_id),
            "promotions": self._executor.submit(self._businesses.list_promotions, business_id, now),
        }
        done, pending = wait(futures.values(), timeout=self.timeout, return_when=FIRST_EXCEPTION)
        for future in pending:
            future.cancel()
        for name, future in futures.items():
            if future in done:
                self._result(name, future)
        if pending:
            raise ContextUnavailableError(
                f"Grounding records not loaded within {self.timeout:.1f}s"
            )
        results = {name: future.result() for name, future in futures.items()}
        return BusinessRecords(
            catalog=list(results["catalog"]),
            policies=list(results["policies"]),
            promotions=list(results["promotions"]),
        )

    @staticmethod
    def _result(name: str, future: Future[T]) -> T:
        error = future.exception()
        if error is not None:
            raise ContextUnavailableError(f"Loading {name} failed: {error}") from error
        return future.result()

    def load_history(
        self, conversation_id: UUID | None, *, exclude_message_id: UUID | None = None
    ) -> list[ChatTurn]:
        if conversation_id is None or self._history_loader is None:
            return []
        try:
            messages = self._history_loader(conversation_id, self.history_limit + 1)
        except Exception as exc:
            raise ContextUnavailableError(f"Loading history failed: {exc}") from exc
        messages = [m for m in messages if m.id != exclude_message_id]
        return build_history(messages[-self.history_limit:] if self.history_limit else [])

    def assemble(
        self,
        business: BusinessSnapshot,
        settings: ReplySettings,
        *,
        now: datetime,
        conversation_id: UUID | None = None,
        exclude_message_id: UUID | None = None,
    ) -> GroundingContext:
        records = self.load_records(business.id, now)
        prompt = render_system_prompt(business, records, settings, now=now, styles=self._styles)
        history = self.load_history(conversation_id, exclude_message_id=exclude_message_id)
        return GroundingContext(system_prompt=prompt, history=history, records=records)


__all__ = [
    "ChatTurn",
    "ContextAssembler",
    "GroundingContext",
    "build_history",
    "build_turns",
]
