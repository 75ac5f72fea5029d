"""Per-session document list cache.

Lists are cached whole, per session, for a fixed TTL. Any upload or delete
for a session drops its entry so the next read goes to the network.
Concurrent loads for one session are not coalesced: the last fetch to
finish overwrites the entry. A fetch that was in flight when the session
was invalidated never stores its result; the load reads again instead.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import PurePath

from ragchat.api import ApiClient
from ragchat.errors import CacheInconsistencyError, DocumentValidationError, TransportError
from ragchat.models import CacheEntry, DocumentRecord, DocumentUploadResponse

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 5 * 60
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
ACCEPTED_FILE_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
}


def validate_upload(filename: str, content: bytes) -> str:
    """Check a file against the accepted types and size limit.

    Args:
        filename: Name of the file to upload.
        content: Raw file bytes.

    Returns:
        The MIME type matching the file extension.

    Raises:
        DocumentValidationError: If the file is empty, too large or of an
            unsupported type.
    """
    if not filename:
        raise DocumentValidationError("Filename is required")

    suffix = PurePath(filename).suffix.lower()
    if suffix not in ACCEPTED_FILE_TYPES:
        accepted = ", ".join(sorted(ACCEPTED_FILE_TYPES))
        raise DocumentValidationError(f"Unsupported file type '{suffix}'. Accepted: {accepted}")

    if not content:
        raise DocumentValidationError("Empty file provided")

    if len(content) > MAX_FILE_SIZE:
        size_mb = len(content) / (1024 * 1024)
        raise DocumentValidationError(
            f"File size ({size_mb:.1f}MB) exceeds maximum allowed (10MB)"
        )

    return ACCEPTED_FILE_TYPES[suffix]


class DocumentCache:
    """TTL cache of document lists, keyed by session.

    Args:
        api: Backend client for list, upload and delete calls.
        ttl: Seconds an entry is served without revalidation.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        api: ApiClient,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api = api
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        # Last list handed out per session, what the UI is showing
        self._views: dict[str, list[DocumentRecord]] = {}
        # Document ids removed locally whose backend delete has not finished
        self._pending_deletes: dict[str, set[str]] = {}
        # Tickets of fetches in flight; invalidation drops them, marking the fetches stale
        self._inflight: dict[str, set[object]] = {}
        self._sweeper: asyncio.Task | None = None

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, session_id: str) -> CacheEntry | None:
        return self._entries.get(session_id)

    def _fresh_entry(self, session_id: str) -> CacheEntry | None:
        entry = self._entries.get(session_id)
        if entry is None or entry.is_expired(self._clock(), self.ttl):
            return None
        return entry

    def _without_pending(self, session_id: str, documents: list[DocumentRecord]) -> list[DocumentRecord]:
        pending = self._pending_deletes.get(session_id)
        if not pending:
            return documents
        return [doc for doc in documents if doc.document_id not in pending]

    async def load(self, session_id: str, force: bool = False) -> list[DocumentRecord]:
        """Return the documents of a session, from cache when fresh.

        Args:
            session_id: Session whose documents to list.
            force: Skip the cache and fetch.

        Raises:
            TransportError: If the fetch fails. The existing entry is kept.
        """
        if not force:
            entry = self._fresh_entry(session_id)
            if entry is not None:
                logger.debug(f"Document cache hit for session {session_id}")
                documents = list(entry.documents)
                self._views[session_id] = documents
                return documents

        ticket = object()
        self._inflight.setdefault(session_id, set()).add(ticket)
        try:
            fetched = await self._api.list_documents(session_id)
        finally:
            stale = not self._end_fetch(session_id, ticket)
        if stale:
            logger.debug(f"Document list for {session_id} changed while fetching, reloading")
            return await self.load(session_id)

        documents = self._without_pending(session_id, fetched)
        self._entries[session_id] = CacheEntry(
            session_id=session_id,
            documents=documents,
            fetched_at=self._clock(),
        )
        self._views[session_id] = list(documents)
        logger.debug(f"Loaded {len(documents)} documents for session {session_id}")
        return list(documents)

    def _end_fetch(self, session_id: str, ticket: object) -> bool:
        """Retire a fetch ticket. False if the session was invalidated meanwhile."""
        tickets = self._inflight.get(session_id)
        if tickets is None or ticket not in tickets:
            return False
        tickets.discard(ticket)
        if not tickets:
            del self._inflight[session_id]
        return True

    async def refresh(self, session_id: str) -> list[DocumentRecord]:
        return await self.load(session_id, force=True)

    async def upload(self, filename: str, content: bytes, session_id: str) -> DocumentUploadResponse:
        """Upload a document, then drop and reload the session's list.

        Raises:
            DocumentValidationError: Before any network call, for a rejected file.
            TransportError: If the upload or the reload fails.
        """
        content_type = validate_upload(filename, content)
        response = await self._api.upload_document(filename, content, session_id, content_type)
        logger.info(f"Uploaded {filename} as {response.document_id} ({response.chunks_count} chunks)")

        self.invalidate(session_id)
        await self.load(session_id, force=True)
        return response

    async def delete(self, document_id: str, session_id: str) -> None:
        """Delete a document, removing it from the local list right away.

        The removal and invalidation happen before the first suspension
        point, so a load issued in the same tick refetches and never sees
        the document. If the backend rejects the delete, the list is
        reconciled with a forced reload before the error is raised.

        Raises:
            CacheInconsistencyError: If the backend delete fails.
        """
        view = self._views.get(session_id)
        if view is not None:
            self._views[session_id] = [doc for doc in view if doc.document_id != document_id]
        self._pending_deletes.setdefault(session_id, set()).add(document_id)
        self.invalidate(session_id)

        try:
            await self._api.delete_document(document_id)
        except TransportError as e:
            self._discard_pending(session_id, document_id)
            logger.warning(f"Delete of {document_id} failed, reloading documents for {session_id}")
            try:
                await self.load(session_id, force=True)
            except TransportError as reload_error:
                logger.error(f"Reconciling documents for {session_id} failed: {reload_error}")
            raise CacheInconsistencyError(
                f"Failed to delete document {document_id}: {e}"
            ) from e

        self._discard_pending(session_id, document_id)
        # Fetches issued while the delete was in flight may still list the document
        self.invalidate(session_id)
        logger.info(f"Deleted document {document_id} from session {session_id}")

    def _discard_pending(self, session_id: str, document_id: str) -> None:
        pending = self._pending_deletes.get(session_id)
        if pending is None:
            return
        pending.discard(document_id)
        if not pending:
            del self._pending_deletes[session_id]

    def documents(self, session_id: str) -> list[DocumentRecord]:
        """The last list served for a session, including optimistic removals."""
        return list(self._views.get(session_id, []))

    def get_document(self, session_id: str, document_id: str) -> DocumentRecord | None:
        for doc in self._views.get(session_id, []):
            if doc.document_id == document_id:
                return doc
        return None

    def invalidate(self, session_id: str) -> None:
        """Drop the entry of a session and mark its in-flight fetches stale.

        The last served list stays available through documents() until the
        session is swept or cleared.
        """
        self._entries.pop(session_id, None)
        self._inflight.pop(session_id, None)

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()
        self._views.clear()

    def sweep(self) -> int:
        """Drop every entry older than the TTL.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [sid for sid, entry in self._entries.items() if entry.is_expired(now, self.ttl)]
        for sid in expired:
            del self._entries[sid]
        self._drop_orphaned_views()
        if expired:
            logger.debug(f"Swept {len(expired)} expired document list(s)")
        return len(expired)

    def _drop_orphaned_views(self) -> None:
        orphaned = [
            sid for sid in self._views
            if sid not in self._entries and sid not in self._pending_deletes
        ]
        for sid in orphaned:
            del self._views[sid]

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.ttl)
            self.sweep()

    def start_sweeper(self) -> None:
        """Run sweep() every TTL on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
