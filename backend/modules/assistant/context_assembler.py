"""
modules/assistant/context_assembler.py
----------------------------------------
Prompt assembly and command heuristics for the trip assistant.

Every builder only reformats what it is given: retrieved chunks, the day's
schedule, candidate slots.  None of them adds facts of its own, and the Q&A
prompt tells the model to answer only from the supplied context and to
decline with NO_INFO_REPLY otherwise.

Command heuristics are best-effort keyword / regex matching, not a grammar.
"""

from __future__ import annotations

import re
from typing import Optional

from modules.memory.memory_store import MemorySearchResult
from modules.planning.time_range import extract_clock_times, format_hm, parse_time_range
from schemas.itinerary import TripItem
from schemas.memory import FreeBlock
from schemas.planner import TimeRange

NO_INFO_REPLY = "I don't have that information in your itinerary. Would you like to add it?"
EMPTY_DAY_SENTINEL = "No activities scheduled for this day."

MODIFICATION_KEYWORDS: tuple[str, ...] = (
    "move", "change", "reschedule", "shift", "swap", "cancel",
    "remove", "delete", "add", "update", "modify",
)

REMOVAL_KEYWORDS: tuple[str, ...] = ("cancel", "remove", "delete")

_TARGET_PATTERNS: list[re.Pattern] = [
    re.compile(r"move\s+(?:my\s+)?(.+?)\s+to", re.IGNORECASE),
    re.compile(r"change\s+(?:my\s+)?(.+?)\s+to", re.IGNORECASE),
    re.compile(r"reschedule\s+(?:my\s+)?(.+)", re.IGNORECASE),
]

_DESTINATION_RE = re.compile(r"\b(?:move|change|shift|reschedule)\b.*?\bto\b(.*)$", re.IGNORECASE)


# ── Command heuristics ────────────────────────────────────────────────────────

def is_modification_command(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in MODIFICATION_KEYWORDS)


def is_removal_command(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in REMOVAL_KEYWORDS)


def extract_target_from_command(command: str, items: list[TripItem]) -> Optional[TripItem]:
    """
    Resolve which item a command refers to.

    1. An item whose full title appears in the command (case-insensitive).
    2. A phrase captured by "move/change ... to" or "reschedule ...",
       matched as a substring of an item title.
    First match wins.
    """
    lowered = command.lower()
    for item in items:
        title = item.title.strip().lower()
        if title and title in lowered:
            return item

    for pattern in _TARGET_PATTERNS:
        match = pattern.search(command)
        if not match:
            continue
        target = match.group(1).strip().lower()
        if not target:
            continue
        for item in items:
            if target in item.title.lower():
                return item
    return None


def extract_destination_window(command: str, target: TripItem) -> Optional[TimeRange]:
    """
    The time window a modification command asks to move ``target`` into.

    The target's own title is cut out first, so an item called "Night Market"
    or "Lunch" never picks the window itself.  Two explicit clock times
    anywhere in the rest win; otherwise only the text after "move/change ... to"
    is read for a named period.
    """
    title = target.title.strip()
    text = re.sub(re.escape(title), " ", command, flags=re.IGNORECASE) if title else command
    if len(extract_clock_times(text)) >= 2:
        return parse_time_range(text)
    match = _DESTINATION_RE.search(text)
    return parse_time_range(match.group(1) if match else text)


# ── Context blocks ────────────────────────────────────────────────────────────

def build_context_chunks(results: list[MemorySearchResult], additional: Optional[list[str]] = None) -> str:
    context = "\n".join(f"- {r.chunk.text}" for r in results)
    if additional:
        context += "\n\nAdditional context:\n" + "\n".join(additional)
    return context


def summarize_day(items: list[TripItem]) -> str:
    if not items:
        return EMPTY_DAY_SENTINEL
    ordered = sorted(items, key=lambda i: i.start_dt)
    return "\n".join(f"{format_hm(i.start_dt)}-{format_hm(i.end_dt)}: {i.title}" for i in ordered)


# ── System prompts ────────────────────────────────────────────────────────────

def build_qa_system_prompt(question: str, context: str, trip_name: Optional[str] = None) -> str:
    trip_context = f' for the trip "{trip_name}"' if trip_name else ""
    return f"""You are a helpful travel assistant{trip_context}. Answer the user's question using ONLY the information provided below.

CONTEXT:
{context}

RULES:
1. Answer based ONLY on the context provided above
2. If the answer is not in the context, say: "{NO_INFO_REPLY}"
3. Be concise and helpful
4. For time-related questions, be specific with dates and times
5. Do not make up or assume information not in the context

USER QUESTION: {question}"""


def build_replan_system_prompt(command: str, day_items: list[TripItem], slots: list[FreeBlock]) -> str:
    ordered = sorted(day_items, key=lambda i: i.start_dt)
    events = "\n".join(f"- {i.title}: {format_hm(i.start_dt)} to {format_hm(i.end_dt)}" for i in ordered)
    slot_lines = "\n".join(f"- {format_hm(s.start)} to {format_hm(s.end)}" for s in slots)
    return f"""You are helping to adjust a travel schedule.

CURRENT SCHEDULE:
{events or EMPTY_DAY_SENTINEL}

AVAILABLE TIME SLOTS:
{slot_lines or "No available time slots."}

USER REQUEST: {command}

Respond with a brief confirmation of the proposed change. Be specific about the new times.
Only use the schedule and time slots listed above; do not invent activities or times.
If the request cannot be accommodated, explain why and suggest alternatives from the slots above."""


def build_free_time_system_prompt(question: str, free_blocks: list[FreeBlock], nearby: list[TripItem]) -> str:
    free_lines = (
        "\n".join(f"- {format_hm(b.start)} to {format_hm(b.end)}" for b in free_blocks)
        if free_blocks else "No free time blocks available."
    )
    nearby_lines = "\n".join(f"- {a.title}" for a in nearby) if nearby else "No nearby activities found."
    return f"""You are helping plan free time during a trip.

FREE TIME BLOCKS:
{free_lines}

NEARBY ACTIVITIES YOU COULD DO:
{nearby_lines}

USER QUESTION: {question}

Answer ONLY from the free time blocks and activities listed above.
If there is free time that matches the request, confirm it and suggest what they could do.
If there is no matching free time, explain the schedule conflict and suggest alternatives.
If the information needed is not listed, say: "{NO_INFO_REPLY}".
"""
