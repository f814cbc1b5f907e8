"""In-memory audit trail of stream sessions built from supervisor events."""

from collections import OrderedDict
from math import ceil

from loguru import logger

from .stream_models import StreamEvent, StreamHistoryPage, StreamPagination, StreamSessionResponse
from .stream_state_machine import StreamStateMachine


class StreamAuditLog:
    """Keeps the latest view of each session, bounded to `limit` entries.

    Subscribed to the supervisor; the stream key never reaches it since
    events only carry the masked session view.
    """

    def __init__(self, limit: int = 100):
        self.limit = max(1, int(limit))
        self._records: OrderedDict[str, StreamSessionResponse] = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    async def record(self, event: StreamEvent) -> None:
        self._records[event.session_id] = event.session
        logger.debug(
            "Audit stream={} {} -> {}", event.session_id, event.previous, event.status
        )
        self._trim()

    def _trim(self) -> None:
        while len(self._records) > self.limit:
            oldest_id, oldest = next(iter(self._records.items()))
            if not StreamStateMachine.is_terminal(oldest.status):
                break
            del self._records[oldest_id]

    def get(self, session_id: str) -> StreamSessionResponse | None:
        return self._records.get(session_id)

    def current(self) -> StreamSessionResponse | None:
        """Most recent session that has not reached a terminal status."""
        for record in reversed(self._records.values()):
            if not StreamStateMachine.is_terminal(record.status):
                return record
        return None

    def history(self, page: int = 1, limit: int = 10) -> StreamHistoryPage:
        """Paginated sessions, newest first.

        Args:
            page: 1-based page number
            limit: Page size

        Returns:
            StreamHistoryPage with the page items and pagination info
        """
        page = max(1, page)
        limit = max(1, limit)

        records = list(reversed(self._records.values()))
        total = len(records)
        total_pages = ceil(total / limit)
        skip = (page - 1) * limit

        return StreamHistoryPage(
            streams=records[skip : skip + limit],
            pagination=StreamPagination(
                current_page=page,
                total_pages=total_pages,
                total_streams=total,
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        )
