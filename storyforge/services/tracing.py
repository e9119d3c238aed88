"""
Langfuse Tracing Service for storyforge
One trace per novel session, one span per workflow phase, error events for
failed phases. Disabled (no-op) unless Langfuse keys are configured.
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from langfuse import Langfuse

logger = logging.getLogger(__name__)


class TracingService:
    """
    Service for tracing workflow phases using Langfuse.

    Provides:
    - Trace trees for full novel sessions
    - Span tracking for individual phases
    - Error tracking and debugging

    Each workflow owns its own instance.
    """

    def __init__(self, client: Optional[Langfuse] = None):
        self._client: Optional[Langfuse] = client
        self._enabled = client is not None
        self._traces: Dict[str, Any] = {}  # session_id -> trace

    def initialize(
        self,
        public_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        host: Optional[str] = None,
    ) -> bool:
        """
        Initialize Langfuse client.

        Args:
            public_key: Langfuse public key (or LANGFUSE_PUBLIC_KEY env var)
            secret_key: Langfuse secret key (or LANGFUSE_SECRET_KEY env var)
            host: Langfuse host URL (or LANGFUSE_HOST env var)

        Returns:
            True if initialization successful, False otherwise
        """
        public_key = public_key or os.getenv("LANGFUSE_PUBLIC_KEY")
        secret_key = secret_key or os.getenv("LANGFUSE_SECRET_KEY")
        host = host or os.getenv("LANGFUSE_HOST", "https://cloud.langfuse.com")

        if not public_key or not secret_key:
            logger.info("Langfuse keys not configured. Tracing disabled.")
            return False

        try:
            self._client = Langfuse(
                public_key=public_key,
                secret_key=secret_key,
                host=host,
            )
            self._enabled = True
            logger.info(f"Langfuse tracing initialized. Host: {host}")
            return True
        except Exception as e:
            logger.warning(f"Failed to initialize Langfuse: {e}")
            return False

    @property
    def enabled(self) -> bool:
        """Check if tracing is enabled."""
        return self._enabled and self._client is not None

    def start_trace(
        self,
        session_id: str,
        name: str = "novel_session",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]:
        """Start a new trace for a novel session."""
        if not self.enabled:
            return None

        try:
            trace = self._client.trace(
                id=session_id,
                name=name,
                metadata=metadata or {},
                session_id=session_id,
            )
            self._traces[session_id] = trace
            return trace
        except Exception as e:
            logger.warning(f"Failed to start trace: {e}")
            return None

    def end_trace(
        self,
        session_id: str,
        output: Optional[Dict[str, Any]] = None,
    ) -> None:
        """End a trace and flush to Langfuse."""
        if not self.enabled:
            return

        trace = self._traces.pop(session_id, None)
        if trace:
            try:
                trace.update(output=output)
                self._client.flush()
            except Exception as e:
                logger.warning(f"Failed to end trace: {e}")

    @asynccontextmanager
    async def span(
        self,
        session_id: str,
        name: str,
        input_data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """
        Context manager for creating a span within a trace.

        Yields:
            Span object or None if tracing disabled
        """
        trace = self._traces.get(session_id) if self.enabled else None
        if not trace:
            yield None
            return

        start_time = time.time()
        span = trace.span(
            name=name,
            input=input_data,
            metadata=metadata or {},
        )
        try:
            yield span
        except Exception as e:
            span.update(level="ERROR", status_message=str(e))
            raise
        finally:
            latency_ms = (time.time() - start_time) * 1000
            span.end(metadata={**(metadata or {}), "latency_ms": latency_ms})

    def log_event(
        self,
        session_id: str,
        name: str,
        level: str = "DEFAULT",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log an event within a trace.

        Args:
            session_id: Session identifier
            name: Event name
            level: Event level (DEFAULT, DEBUG, WARNING, ERROR)
            metadata: Additional metadata
        """
        if not self.enabled:
            return

        trace = self._traces.get(session_id)
        if not trace:
            return

        try:
            trace.event(
                name=name,
                level=level,
                metadata=metadata or {},
            )
        except Exception as e:
            logger.warning(f"Failed to log event: {e}")

    def log_error(
        self,
        session_id: str,
        error: str,
        phase: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a phase error within a trace."""
        self.log_event(
            session_id=session_id,
            name=f"error_{phase or 'unknown'}",
            level="ERROR",
            metadata={
                "error": error,
                "phase": phase,
                **(metadata or {}),
            },
        )

    def flush(self) -> None:
        """Flush all pending traces to Langfuse."""
        if self.enabled:
            try:
                self._client.flush()
            except Exception as e:
                logger.warning(f"Failed to flush traces: {e}")

    def shutdown(self) -> None:
        """Shutdown the tracing service."""
        self.flush()
        if self._client:
            try:
                self._client.shutdown()
            except Exception as e:
                logger.warning(f"Failed to shut down Langfuse client: {e}")
        self._client = None
        self._enabled = False
        self._traces.clear()
