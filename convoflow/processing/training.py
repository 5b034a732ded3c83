"""Turn uploaded documents and fetched pages into retrieval chunks."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from sqlalchemy import delete, update
from sqlalchemy.orm import Session, sessionmaker

from ..chunking import Chunk, chunk_text, estimate_tokens
from ..models import DocumentChunk, TrainingSource, utcnow

logger = logging.getLogger(__name__)

MIN_PAGE_CHARS = 50


@dataclass(frozen=True)
class FetchedPage:
    url: str
    content: str
    title: str | None = None


class ChunkSink(Protocol):
    """Receives the chunks of one source; embedding happens downstream."""

    def store(
        self, agent_id: uuid.UUID, source_id: uuid.UUID, chunks: Sequence[Chunk]
    ) -> int: ...


class DatabaseChunkSink:
    """Replace the source's ``document_chunks`` rows with ``chunks``."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def store(
        self, agent_id: uuid.UUID, source_id: uuid.UUID, chunks: Sequence[Chunk]
    ) -> int:
        with self.session_factory.begin() as session:
            session.execute(delete(DocumentChunk).where(DocumentChunk.source_id == source_id))
            for index, chunk in enumerate(chunks):
                session.add(
                    DocumentChunk(
                        agent_id=agent_id,
                        source_id=source_id,
                        chunk_index=index,
                        content=chunk.content,
                        token_count=estimate_tokens(chunk.content),
                        metadata_=chunk.metadata(),
                    )
                )
        return len(chunks)


def _mark_source(
    session_factory: sessionmaker[Session], source_id: uuid.UUID, **values: Any
) -> None:
    with session_factory.begin() as session:
        session.execute(
            update(TrainingSource)
            .where(TrainingSource.id == source_id)
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )


def _store(
    session_factory: sessionmaker[Session],
    sink: ChunkSink | None,
    agent_id: uuid.UUID,
    source_id: uuid.UUID,
    chunks: List[Chunk],
) -> int:
    target = sink or DatabaseChunkSink(session_factory)
    stored = target.store(agent_id, source_id, chunks)
    _mark_source(
        session_factory, source_id, status="completed", chunk_count=stored, error_message=None
    )
    return stored


def process_training_upload(
    session_factory: sessionmaker[Session],
    *,
    source_id: uuid.UUID,
    agent_id: uuid.UUID,
    file_name: str,
    extracted_text: str,
    extracted_title: str | None = None,
    source_type: str | None = None,
    sink: ChunkSink | None = None,
) -> bool:
    """Chunk the text extracted from an uploaded file.

    Returns ``True`` when the source was marked ``completed``; any failure
    marks it ``failed`` with the error message and returns ``False``.
    """

    try:
        extra: Dict[str, Any] = {"filename": file_name}
        if source_type:
            extra["source_type"] = source_type
        chunks = chunk_text(
            extracted_text,
            {"url": f"file://{file_name}", "title": extracted_title, **extra},
        )
        stored = _store(session_factory, sink, agent_id, source_id, chunks)
    except Exception as exc:
        logger.exception("Upload processing failed for source %s", source_id)
        _mark_source(
            session_factory,
            source_id,
            status="failed",
            error_message=str(exc) or "Processing failed",
        )
        return False
    logger.info("Upload completed for source %s: %d chunks", source_id, stored)
    return True


def process_training_scrape(
    session_factory: sessionmaker[Session],
    *,
    source_id: uuid.UUID,
    agent_id: uuid.UUID,
    pages: Iterable[FetchedPage | Mapping[str, Any]],
    sink: ChunkSink | None = None,
) -> bool:
    """Chunk pages that were already fetched for a website source.

    Pages with fewer than 50 characters of content are ignored. A source
    with no usable pages is marked ``failed``.
    """

    try:
        chunks: List[Chunk] = []
        for raw in pages:
            page = raw if isinstance(raw, FetchedPage) else _page_from_mapping(raw)
            if page is None or len(page.content.strip()) < MIN_PAGE_CHARS:
                continue
            for chunk in chunk_text(page.content, {"url": page.url, "title": page.title}):
                chunks.append(chunk)
        if not chunks:
            _mark_source(
                session_factory,
                source_id,
                status="failed",
                error_message="No content found on website",
            )
            return False
        stored = _store(session_factory, sink, agent_id, source_id, chunks)
    except Exception as exc:
        logger.exception("Scrape processing failed for source %s", source_id)
        _mark_source(
            session_factory,
            source_id,
            status="failed",
            error_message=str(exc) or "Unknown error",
        )
        return False
    logger.info("Scrape completed for source %s: %d chunks", source_id, stored)
    return True


def _page_from_mapping(raw: Mapping[str, Any]) -> Optional[FetchedPage]:
    content = raw.get("content")
    if not isinstance(content, str):
        return None
    return FetchedPage(url=str(raw.get("url") or ""), content=content, title=raw.get("title"))


__all__ = [
    "ChunkSink",
    "DatabaseChunkSink",
    "FetchedPage",
    "process_training_scrape",
    "process_training_upload",
]
