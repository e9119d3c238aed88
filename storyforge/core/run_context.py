"""
Execution context for one novel run.

Holds the current session value, the services agents need, the UI callback
and the run's cancellation signal. Nothing here is process-global: every
workflow owns its own RunContext.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .reducer import SessionEvent, reduce
from .session import NovelSession

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Dict[str, Any]], None]


@dataclass
class RunContext:
    """
    Execution context for a run.

    Provides access to:
    - Shared state (NovelSession), replaced on every dispatch
    - Services (memory store, generation client, tracing)
    - Event emission for UI updates
    - The cancellation signal checked by streaming calls
    """

    state: NovelSession

    memory_store: Any = None  # MemoryStore
    generation_client: Any = None  # GenerationClient
    tracing: Any = None  # TracingService

    event_callback: Optional[EventCallback] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    def dispatch(self, event: SessionEvent) -> NovelSession:
        """Apply an event through the reducer and notify the UI."""
        self.state = reduce(self.state, event)
        self.emit_event(event.event_type, event.to_dict())
        return self.state

    def emit_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Emit an event for UI updates."""
        if not self.event_callback:
            return
        try:
            self.event_callback(event_type, data)
        except Exception as e:
            logger.warning(f"[emit_event] callback failed for {event_type}: {e}")

    def reset_cancellation(self) -> asyncio.Event:
        """Fresh signal for a new run; a signal set by stop() stays set."""
        self.cancel_event = asyncio.Event()
        return self.cancel_event

    def check_cancelled(self) -> bool:
        """Check if execution has been cancelled."""
        return self.cancel_event.is_set()
