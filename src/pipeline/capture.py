"""Out-of-band analysis of the frame at the current playback position."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .analyzer import AnalysisPipeline, new_item_id
from .results import MarkFailed, MarkReady, Prepend
from .session import VideoSession
from .types import ResultItem


@dataclass(frozen=True)
class CaptureTicket:
    generation: int
    item: ResultItem


class AdHocCapture:
    """Captures one frame, prepends it to the results and analyses it.

    Shares the pipeline's extractor and inference queue so captures never add a
    second concurrent remote call.
    """

    def __init__(self, pipeline: AnalysisPipeline, logger: Optional[logging.Logger] = None) -> None:
        self._pipeline = pipeline
        self._logger = logger or logging.getLogger(__name__)

    @staticmethod
    def position_available(session: VideoSession, position: Optional[float]) -> bool:
        if not session.has_video or not position or position < 0:
            return False
        return position < session.duration

    async def snapshot(self, session: VideoSession, position: Optional[float]) -> Optional[CaptureTicket]:
        """Capture and prepend a loading item; ``None`` when the capture is not allowed."""
        if not self.position_available(session, position) or session.machine.analyzing:
            self._logger.debug("Capture at %s ignored (state=%s)", position, session.state.value)
            return None

        generation = session.generation
        frame = await self._pipeline.extractor.capture(session.path, float(position))
        if not session.is_current(generation) or session.machine.analyzing:
            self._logger.debug("Capture at %.2fs discarded; session moved on", frame.timestamp)
            return None

        item = ResultItem(id=new_item_id(), timestamp=frame.timestamp, thumbnail=frame.image, source="capture")
        session.dispatch(generation, Prepend(item))
        return CaptureTicket(generation=generation, item=item)

    async def resolve(self, session: VideoSession, ticket: CaptureTicket) -> None:
        item = ticket.item
        try:
            record = await self._pipeline.queue.submit(self._pipeline.analyze, item.thumbnail)
        except Exception as error:
            self._logger.warning("Capture analysis failed at %.2fs: %s", item.timestamp, error)
            session.dispatch(ticket.generation, MarkFailed(item.id, self._pipeline.config.capture_error_message))
            return
        session.dispatch(ticket.generation, MarkReady(item.id, record))

    async def capture_current(self, session: VideoSession, position: Optional[float]) -> Optional[str]:
        ticket = await self.snapshot(session, position)
        if ticket is None:
            return None
        await self.resolve(session, ticket)
        return ticket.item.id


__all__ = ["AdHocCapture", "CaptureTicket"]
