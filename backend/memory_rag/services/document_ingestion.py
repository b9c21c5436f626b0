"""
Document Ingestion - Chunk, embed and store extracted document text

Text extraction (PDF, HTML, notebooks, ...) happens upstream; this service
receives plain text per uploaded file.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from memory_rag.context_engine.document_chunker import DocumentChunker
from memory_rag.context_engine.models import Corpus, DocumentChunkRecord
from .embedding_service import EmbeddingServiceInterface
from .vector_store_base import VectorStoreInterface

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    document_id: str
    filename: str
    chunks_stored: int
    total_characters: int
    records: List[DocumentChunkRecord] = field(default_factory=list)


class DocumentIngestionService:
    def __init__(
        self,
        embedding_service: EmbeddingServiceInterface,
        vector_store: VectorStoreInterface,
        chunker: Optional[DocumentChunker] = None,
    ):
        if chunker is None:
            from memory_rag.core.config import settings

            chunker = DocumentChunker(
                max_chunk_size=settings.MAX_CHUNK_SIZE,
                overlap_sentences=settings.CHUNK_OVERLAP_SENTENCES,
            )

        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.chunker = chunker

    async def ingest(
        self,
        document_id: str,
        project_id: str,
        filename: str,
        text: str,
        page_count: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IngestionResult:
        """
        Store a document as ordered, embedded chunks.

        Chunks are embedded one at a time; a failure part-way leaves the
        chunks stored so far in place and propagates the error.
        """
        chunks = self.chunker.chunk_document(text or "", page_count=page_count)
        if not chunks:
            logger.info("No content to ingest for %s", filename, extra={"project_id": project_id})
            return IngestionResult(document_id=document_id, filename=filename, chunks_stored=0, total_characters=0)

        records = []
        for chunk in chunks:
            embedding = await self.embedding_service.embed(chunk.text)
            record = DocumentChunkRecord(
                document_id=document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.text,
                embedding=tuple(embedding),
                total_chunks=chunk.total_chunks,
                project_id=project_id,
                filename=filename,
                section=chunk.section,
                page=chunk.page,
            )

            payload = record.payload()
            if metadata:
                payload.update({k: v for k, v in metadata.items() if k not in payload})

            await self.vector_store.upsert(Corpus.DOCUMENTS.value, record.record_id, record.embedding, payload)
            records.append(record)

        logger.info(
            "Ingested %s: %d chunks",
            filename,
            len(records),
            extra={"project_id": project_id},
        )

        return IngestionResult(
            document_id=document_id,
            filename=filename,
            chunks_stored=len(records),
            total_characters=sum(len(r.content) for r in records),
            records=records,
        )

    async def delete_document(self, document_id: str) -> int:
        """Remove every chunk of a document; returns the number removed"""
        removed = await self.vector_store.delete_by_filter(Corpus.DOCUMENTS.value, {"document_id": document_id})
        logger.info("Deleted %d chunks of document %s", removed, document_id)
        return removed
