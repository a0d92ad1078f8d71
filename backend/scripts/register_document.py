"""
Upload local files to document storage and register them as source documents.
Run: python -m scripts.register_document path/to/contract.docx [more files...]  (from backend/)

Prints the document id to pass as `document_id` when creating a pipeline.
"""

import asyncio
import mimetypes
import sys
import uuid
from pathlib import Path

from docpipeline.core.config import get_settings
from docpipeline.db.session import create_session_factory
from docpipeline.documents.codecs import codec_for_path
from docpipeline.repositories.documents import create_document
from docpipeline.storage import build_document_store


async def register(paths: list[Path]) -> None:
    """Upload each file and insert its documents row."""
    settings = get_settings()
    store = build_document_store(settings)
    db_engine, session_factory = create_session_factory(settings.DATABASE_URL, pooled=False)
    try:
        async with session_factory() as session:
            for path in paths:
                codec = codec_for_path(path.name)
                data = path.read_bytes()
                storage_path = await store.upload(
                    f"uploads/{uuid.uuid4().hex}/{path.name}",
                    data,
                    codec.content_type,
                )
                document = await create_document(
                    session,
                    filename=path.name,
                    storage_path=storage_path,
                    content_type=mimetypes.guess_type(path.name)[0] or codec.content_type,
                    size_bytes=len(data),
                )
                print(f"  Registered {path.name}: {document.id}")
            await session.commit()
    finally:
        await db_engine.dispose()
    print(f"Registered {len(paths)} document(s).")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        sys.exit("usage: python -m scripts.register_document FILE [FILE...]")
    asyncio.run(register([Path(arg) for arg in sys.argv[1:]]))
