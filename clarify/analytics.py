"""Analytics event port used by the analysis pipeline.

The pipeline only talks to ``AnalyticsEmitter``; recorders behind it may be a
database writer, a queue producer or the in-memory recorder below.  Emission
never raises into the caller: a failing recorder is logged and ignored.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol

from clarify.utils.time import utc_iso

logger = logging.getLogger(__name__)


class EventName(str, Enum):
    SESSION_STARTED = "session_started"
    INPUT_RECEIVED = "input_received"
    QUESTIONS_ASKED = "questions_asked"
    LOOP_BUILT = "loop_built"
    SPIESS_BUILT = "spiess_built"
    SUMMARY_BUILT = "summary_built"
    SAFE_EXIT = "safe_exit"
    USER_DELETED_DATA = "user_deleted_data"
    MICRO_TEST_COMPLETED = "micro_test_completed"
    DAY2_RETURN = "day2_return"


class AnalyticsRecorder(Protocol):
    async def record(
        self,
        session_id: str,
        event_name: EventName,
        event_data: Mapping[str, Any],
        user_id: Optional[str] = None,
        request_context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...


class NullAnalyticsRecorder:
    async def record(
        self,
        session_id: str,
        event_name: EventName,
        event_data: Mapping[str, Any],
        user_id: Optional[str] = None,
        request_context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        return None


@dataclass
class RecordedEvent:
    session_id: str
    event_name: EventName
    event_data: Dict[str, Any]
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: str = field(default_factory=utc_iso)


class InMemoryAnalyticsRecorder:
    def __init__(self) -> None:
        self._events: Dict[str, List[RecordedEvent]] = defaultdict(list)

    async def record(
        self,
        session_id: str,
        event_name: EventName,
        event_data: Mapping[str, Any],
        user_id: Optional[str] = None,
        request_context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        context = request_context or {}
        self._events[session_id].append(
            RecordedEvent(
                session_id=session_id,
                event_name=EventName(event_name),
                event_data=dict(event_data),
                user_id=user_id,
                ip_address=context.get("ip_address"),
                user_agent=context.get("user_agent"),
            )
        )

    def events(self, session_id: str) -> List[RecordedEvent]:
        return list(self._events.get(session_id, []))

    def event_names(self, session_id: str) -> List[str]:
        return [event.event_name.value for event in self.events(session_id)]

    def session_summary(self, session_id: str) -> Dict[str, Any]:
        events = self.events(session_id)
        names = {event.event_name for event in events}
        return {
            "totalEvents": len(events),
            "events": [
                {
                    "eventName": event.event_name.value,
                    "timestamp": event.timestamp,
                    "eventData": event.event_data,
                }
                for event in events
            ],
            "hasSessionStarted": EventName.SESSION_STARTED in names,
            "hasInputReceived": EventName.INPUT_RECEIVED in names,
            "hasQuestionsAsked": EventName.QUESTIONS_ASKED in names,
            "hasLoopBuilt": EventName.LOOP_BUILT in names,
            "hasSpiessBuilt": EventName.SPIESS_BUILT in names,
            "hasSummaryBuilt": EventName.SUMMARY_BUILT in names,
            "hasSafeExit": EventName.SAFE_EXIT in names,
        }


class AnalyticsEmitter:
    def __init__(
        self,
        recorder: Optional[AnalyticsRecorder] = None,
        user_id: Optional[str] = None,
        request_context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.recorder = recorder or NullAnalyticsRecorder()
        self.user_id = user_id
        self.request_context = request_context

    def bind(
        self, user_id: Optional[str], request_context: Optional[Mapping[str, Any]]
    ) -> "AnalyticsEmitter":
        return AnalyticsEmitter(self.recorder, user_id=user_id, request_context=request_context)

    async def emit(
        self, session_id: str, event_name: EventName, event_data: Optional[Mapping[str, Any]] = None
    ) -> None:
        try:
            await self.recorder.record(
                session_id,
                event_name,
                dict(event_data or {}),
                user_id=self.user_id,
                request_context=self.request_context,
            )
            logger.debug("Analytics event tracked: %s for session %s", event_name.value, session_id)
        except Exception:
            logger.warning(
                "Analytics event %s failed for session %s", event_name.value, session_id, exc_info=True
            )

    async def session_started(self, session_id: str) -> None:
        await self.emit(session_id, EventName.SESSION_STARTED)

    async def input_received(self, session_id: str, input_length: int) -> None:
        await self.emit(session_id, EventName.INPUT_RECEIVED, {"inputLength": input_length})

    async def questions_asked(self, session_id: str, questions: List[str]) -> None:
        await self.emit(
            session_id,
            EventName.QUESTIONS_ASKED,
            {
                "questionCount": len(questions),
                "questions": [question[:100] for question in questions],
            },
        )

    async def loop_built(self, session_id: str, narrative_loop: Mapping[str, Any]) -> None:
        await self.emit(
            session_id,
            EventName.LOOP_BUILT,
            {
                "hasTrigger": bool(narrative_loop.get("trigger")),
                "hasFear": bool(narrative_loop.get("fear")),
                "hasEmotion": bool(narrative_loop.get("emotion")),
                "hasOutcome": bool(narrative_loop.get("outcome")),
                "mechanismCount": len(narrative_loop.get("mechanisms") or []),
            },
        )

    async def spiess_built(self, session_id: str, spiess_map: Mapping[str, Any]) -> None:
        tool_action = spiess_map.get("toolAction") or {}
        await self.emit(
            session_id,
            EventName.SPIESS_BUILT,
            {
                "needsCount": len(spiess_map.get("needs") or []),
                "hasMicroTest": bool(spiess_map.get("microTest")),
                "hasToolAction": bool(tool_action),
                "protocol": tool_action.get("protocol"),
            },
        )

    async def summary_built(self, session_id: str, summary: Mapping[str, Any]) -> None:
        await self.emit(
            session_id,
            EventName.SUMMARY_BUILT,
            {
                "contentLength": len(summary.get("content") or ""),
                "mechanismCount": len(summary.get("mechanisms") or []),
                "hasNextStep": bool(summary.get("nextStep")),
            },
        )

    async def safe_exit(self, session_id: str, reason: str) -> None:
        await self.emit(session_id, EventName.SAFE_EXIT, {"reason": reason})

    async def user_deleted_data(self, session_id: str) -> None:
        await self.emit(session_id, EventName.USER_DELETED_DATA)

    async def micro_test_completed(self, session_id: str, test_result: Mapping[str, Any]) -> None:
        await self.emit(session_id, EventName.MICRO_TEST_COMPLETED, test_result)

    async def day2_return(self, session_id: str) -> None:
        await self.emit(session_id, EventName.DAY2_RETURN)
