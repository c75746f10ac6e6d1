"""
modules/assistant/trip_brain.py
---------------------------------
TripBrain — question answering and confirmed schedule edits over one trip.

Conversation state lives in an explicit ``BrainSession`` that the caller
passes into every call; TripBrain itself holds only its collaborators.

Message routing
───────────────
  modification command  → modification state machine (below)
  free-time question    → free blocks over the asked range + nearby items
  anything else         → memory search → Q&A prompt
                          (no hits → direct aggregation of every day)

Modification state machine
──────────────────────────
  Received ─► TargetResolved ─► SlotFound ─► ConfirmationDrafted ─► Pending
      │              │
      └► Rejected    └► Rejected
        (no target)    (no slot)

  Pending ─► Applied   (item mutated, memory re-indexed, confirmation message)
          └► Dismissed (decline message)

Only one PendingAction may be live per session; a second modification
command while one is pending raises PendingActionConflictError.  Concurrent
calls on the same session must be serialised by the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

import config
from db.repositories.trip_repo import TripRepository
from modules.assistant.context_assembler import (
    build_context_chunks,
    build_free_time_system_prompt,
    build_qa_system_prompt,
    build_replan_system_prompt,
    extract_destination_window,
    extract_target_from_command,
    is_modification_command,
    is_removal_command,
    summarize_day,
)
from modules.errors import ModelNotReadyError, NoPendingActionError, PendingActionConflictError
from modules.memory.memory_store import MemoryStore
from modules.observability.logger import StructuredLogger
from modules.planning.logistics_graph import (
    build_logistics_graph,
    compute_free_blocks,
    find_earliest_available_slot,
)
from modules.planning.time_range import at_time, duration_minutes, format_hm, parse_time_range
from modules.tool_usage.engine import (
    CancellationToken,
    ChatMessage,
    ModelEngine,
    TokenCallback,
)
from schemas.itinerary import TripItem, new_id
from schemas.memory import FreeBlock, LogisticsRelation
from schemas.planner import TimeRange

logger = logging.getLogger(__name__)

NO_TARGET_REPLY = "I couldn't identify which activity you want to modify. Could you be more specific?"
NO_SLOT_REPLY = "I couldn't find a suitable time slot for that change. The schedule might be full."
DISMISSED_REPLY = "Okay, I've left your schedule unchanged."
MISSING_ITEM_REPLY = "That activity is no longer in your itinerary, so there is nothing to change."

FREE_TIME_MARKERS: tuple[str, ...] = ("free time", "free", "available", "nothing planned", "open slot")


# ── Conversation records ──────────────────────────────────────────────────────

class PendingKind(str, Enum):
    reschedule = "reschedule"
    remove     = "remove"


class PendingStatus(str, Enum):
    pending   = "pending"
    applied   = "applied"
    dismissed = "dismissed"


@dataclass
class PendingAction:
    kind:        PendingKind
    item_id:     str
    title:       str
    description: str
    new_start:   Optional[str] = None     # ISO datetime, reschedule only
    new_end:     Optional[str] = None
    status:      PendingStatus = PendingStatus.pending
    id:          str = field(default_factory=lambda: new_id("act"))

    def to_dict(self) -> dict:
        return {
            "id":          self.id,
            "kind":        self.kind.value,
            "item_id":     self.item_id,
            "title":       self.title,
            "description": self.description,
            "new_start":   self.new_start,
            "new_end":     self.new_end,
            "status":      self.status.value,
        }


class ModificationStatus(str, Enum):
    rejected_no_target = "rejected_no_target"
    rejected_no_slot   = "rejected_no_slot"
    pending            = "pending"


@dataclass
class ModificationOutcome:
    status:  ModificationStatus
    message: str
    pending: Optional[PendingAction] = None


@dataclass
class BrainSession:
    trip_id:  str
    id:       str = field(default_factory=lambda: new_id("sess"))
    messages: list[ChatMessage] = field(default_factory=list)
    pending:  Optional[PendingAction] = None

    @property
    def has_pending(self) -> bool:
        return self.pending is not None and self.pending.status == PendingStatus.pending

    def clear(self) -> None:
        self.messages.clear()
        self.pending = None


@dataclass
class AskResult:
    reply:        str
    modification: Optional[ModificationOutcome] = None


# ── TripBrain ─────────────────────────────────────────────────────────────────

class TripBrain:
    def __init__(
        self,
        trips:  TripRepository,
        memory: MemoryStore,
        engine: ModelEngine,
        events: Optional[StructuredLogger] = None,
    ) -> None:
        self._trips = trips
        self._memory = memory
        self._engine = engine
        self._events = events or StructuredLogger()

    # ── entry point ───────────────────────────────────────────────────────────

    async def ask(
        self,
        session:  BrainSession,
        question: str,
        day_id:   Optional[str] = None,
        on_token: Optional[TokenCallback] = None,
        cancel:   Optional[CancellationToken] = None,
    ) -> AskResult:
        if not question.strip():
            raise ValueError("question is empty")
        if not self._engine.state().is_ready:
            raise ModelNotReadyError()

        is_modification = is_modification_command(question)
        if is_modification and session.has_pending:
            raise PendingActionConflictError(
                f"'{session.pending.title}' is still awaiting confirmation; apply or dismiss it first"
            )

        history = [m for m in session.messages if m.role != "system"][-config.CHAT_HISTORY_TURNS:]
        session.messages.append(ChatMessage("user", question))
        session.messages.append(ChatMessage("assistant", ""))
        stream = self._stream_into(session, on_token)

        try:
            if is_modification:
                outcome = await self._handle_modification(session, question, stream, cancel)
                return AskResult(reply=session.messages[-1].content, modification=outcome)
            await self._handle_question(session, question, history, day_id, stream, cancel)
            return AskResult(reply=session.messages[-1].content)
        except Exception:
            # drop the half-written assistant turn
            if session.messages and session.messages[-1].role == "assistant":
                session.messages.pop()
            raise

    @staticmethod
    def _stream_into(session: BrainSession, on_token: Optional[TokenCallback]) -> TokenCallback:
        target = session.messages[-1]

        def _append(token: str) -> None:
            target.content += token
            if on_token:
                on_token(token)

        return _append

    # ── questions ─────────────────────────────────────────────────────────────

    async def _handle_question(
        self,
        session:  BrainSession,
        question: str,
        history:  list[ChatMessage],
        day_id:   Optional[str],
        stream:   TokenCallback,
        cancel:   Optional[CancellationToken],
    ) -> None:
        window = parse_time_range(question)
        lowered = question.lower()
        if window and any(marker in lowered for marker in FREE_TIME_MARKERS):
            system_prompt = await self._free_time_prompt(session.trip_id, question, window, day_id)
        else:
            system_prompt = await self._qa_prompt(session.trip_id, question)

        result = await self._engine.complete(
            [ChatMessage("system", system_prompt), *history, ChatMessage("user", question)],
            on_token=stream,
            cancel=cancel,
        )
        # the cleaned reply replaces the raw streamed text
        session.messages[-1].content = result.response or session.messages[-1].content

    async def _qa_prompt(self, trip_id: str, question: str) -> str:
        trip = await self._trips.get_trip(trip_id)
        try:
            results = await self._memory.search(trip_id, question, config.MEMORY_TOP_K)
        except Exception as exc:
            logger.warning("Memory search failed for trip %s, using direct aggregation: %s", trip_id, exc)
            results = []

        context = build_context_chunks(results) if results else await self._aggregate_trip(trip_id)
        return build_qa_system_prompt(question, context, trip.name if trip else None)

    async def _aggregate_trip(self, trip_id: str) -> str:
        """Every day of the trip rendered with summarize_day()."""
        items = await self._trips.get_all_trip_items(trip_id)
        days = await self._trips.get_day_plans(trip_id)
        sections: list[str] = []
        if days:
            for day in days:
                day_items = [i for i in items if i.day_id == day.id]
                sections.append(f"Day {day.day_number} ({day.date}):\n{summarize_day(day_items)}")
        else:
            by_day: dict[str, list[TripItem]] = {}
            for item in sorted(items, key=lambda i: i.start_dt):
                by_day.setdefault(item.day_id, []).append(item)
            for day_items in by_day.values():
                sections.append(f"{day_items[0].day_date.isoformat()}:\n{summarize_day(day_items)}")
        return "\n\n".join(sections)

    async def _free_time_prompt(self, trip_id: str, question: str, window: TimeRange, day_id: Optional[str]) -> str:
        items = await self._trips.get_all_trip_items(trip_id)
        days = await self._trips.get_day_plans(trip_id)

        day = next((d for d in days if d.id == day_id), None) if day_id else None
        if day is None and days:
            day = days[0]
        if day is not None:
            day_items = [i for i in items if i.day_id == day.id]
            day_date = day_items[0].day_date if day_items else date.fromisoformat(day.date)
        elif items:
            first = min(items, key=lambda i: i.start_dt)
            day_items = [i for i in items if i.day_id == first.day_id]
            day_date = first.day_date
        else:
            return build_free_time_system_prompt(question, [], [])

        range_start = at_time(day_date, window.start)
        range_end = at_time(day_date, window.end)
        blocks = compute_free_blocks(day_items, range_start, range_end) if range_start < range_end else []

        graph = build_logistics_graph(items, await self._trips.get_places())
        day_ids = {i.id for i in day_items}
        nearby_ids: list[str] = []
        for item in day_items:
            for relation in (LogisticsRelation.NEAR, LogisticsRelation.SAME_AREA):
                for other in graph.related(item.id, relation):
                    if other not in day_ids and other not in nearby_ids:
                        nearby_ids.append(other)
        by_id = {i.id: i for i in items}
        nearby = [by_id[i] for i in nearby_ids]
        return build_free_time_system_prompt(question, blocks, nearby)

    # ── modifications ─────────────────────────────────────────────────────────

    async def _reject(self, session: BrainSession, status: ModificationStatus, message: str) -> ModificationOutcome:
        session.messages[-1].content = message
        await self._events.alog(session.id, "modification_rejected", {"reason": status.value})
        return ModificationOutcome(status=status, message=message)

    async def _handle_modification(
        self,
        session: BrainSession,
        command: str,
        stream:  TokenCallback,
        cancel:  Optional[CancellationToken],
    ) -> ModificationOutcome:
        items = await self._trips.get_all_trip_items(session.trip_id)

        target = extract_target_from_command(command, items)
        if target is None:
            return await self._reject(session, ModificationStatus.rejected_no_target, NO_TARGET_REPLY)

        if is_removal_command(command):
            description = (
                f"Remove {target.title} ({target.day_date.isoformat()} "
                f"{format_hm(target.start_dt)}-{format_hm(target.end_dt)}) from your itinerary?"
            )
            session.messages[-1].content = description
            return await self._create_pending(session, PendingAction(
                kind=PendingKind.remove, item_id=target.id, title=target.title, description=description,
            ))

        slot = self._find_slot(command, target, items)
        if slot is None:
            return await self._reject(session, ModificationStatus.rejected_no_slot, NO_SLOT_REPLY)

        day_items = [i for i in items if i.day_id == target.day_id]
        result = await self._engine.complete(
            [
                ChatMessage("system", build_replan_system_prompt(command, day_items, [slot])),
                ChatMessage("user", command),
            ],
            on_token=stream,
            cancel=cancel,
        )
        description = result.response or (
            f"Move {target.title} to {format_hm(slot.start)}-{format_hm(slot.end)} "
            f"on {target.day_date.isoformat()}?"
        )
        session.messages[-1].content = description

        return await self._create_pending(session, PendingAction(
            kind=PendingKind.reschedule,
            item_id=target.id,
            title=target.title,
            description=description,
            new_start=slot.start.isoformat(),
            new_end=slot.end.isoformat(),
        ))

    def _find_slot(self, command: str, target: TripItem, items: list[TripItem]) -> Optional[FreeBlock]:
        """Requested window from the command if it names one, else the earliest slot of the day."""
        duration = duration_minutes(target.start_dt, target.end_dt)
        window = extract_destination_window(command, target)
        if window:
            day_items = [i for i in items if i.day_id == target.day_id]
            start = at_time(target.day_date, window.start)
            end = at_time(target.day_date, window.end)
            if start < end:
                for block in compute_free_blocks(day_items, start, end):
                    if block.minutes >= duration:
                        return FreeBlock(block.start, block.start + (target.end_dt - target.start_dt))
                return None
        return find_earliest_available_slot(items, target.day_id, duration)

    async def _create_pending(self, session: BrainSession, action: PendingAction) -> ModificationOutcome:
        session.pending = action
        await self._events.alog(session.id, "pending_created", action.to_dict())
        return ModificationOutcome(status=ModificationStatus.pending, message=action.description, pending=action)

    # ── confirmation ──────────────────────────────────────────────────────────

    async def apply_pending(self, session: BrainSession) -> PendingAction:
        if not session.has_pending:
            raise NoPendingActionError("nothing to apply")
        action = session.pending
        session.pending = None

        item = await self._trips.get_trip_item(action.item_id)
        if item is None:
            action.status = PendingStatus.dismissed
            session.messages.append(ChatMessage("assistant", MISSING_ITEM_REPLY))
            await self._events.alog(session.id, "pending_dismissed", {**action.to_dict(), "reason": "item_missing"})
            return action

        if action.kind == PendingKind.remove:
            await self._trips.delete_trip_item(item.id)
            try:
                await self._memory.remove_by_source(item.id)
            except Exception as exc:
                logger.warning("Chunk removal after delete failed for %s: %s", item.id, exc)
            message = f"Done. {item.title} has been removed from your itinerary."
        else:
            item.start = action.new_start
            item.end = action.new_end
            await self._trips.save_trip_item(item)
            try:
                place = await self._trips.get_place(item.place_id) if item.place_id else None
                await self._memory.reindex_item(item, place)
            except Exception as exc:
                logger.warning("Re-index after reschedule failed for %s: %s", item.id, exc)
            message = (
                f"Done. {item.title} is now {format_hm(item.start_dt)}-{format_hm(item.end_dt)} "
                f"on {item.day_date.isoformat()}."
            )

        action.status = PendingStatus.applied
        session.messages.append(ChatMessage("assistant", message))
        await self._events.alog(session.id, "pending_applied", action.to_dict())
        return action

    async def dismiss_pending(self, session: BrainSession) -> PendingAction:
        if not session.has_pending:
            raise NoPendingActionError("nothing to dismiss")
        action = session.pending
        session.pending = None
        action.status = PendingStatus.dismissed
        session.messages.append(ChatMessage("assistant", DISMISSED_REPLY))
        await self._events.alog(session.id, "pending_dismissed", action.to_dict())
        return action
