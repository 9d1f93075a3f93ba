"""Server side of the stream relay: provider chunks to an incremental text response."""

from typing import AsyncIterator, Optional

from fastapi.responses import StreamingResponse
from loguru import logger

from commitscope.types.chat import ChatChunk

TEXT_STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


async def _first_text(chunks: AsyncIterator[ChatChunk]) -> Optional[str]:
    async for chunk in chunks:
        if chunk.text:
            return chunk.text
    return None


async def _relay(first: Optional[str], chunks: AsyncIterator[ChatChunk]) -> AsyncIterator[str]:
    try:
        if first is None:
            return
        yield first
        async for chunk in chunks:
            if chunk.text:
                yield chunk.text
    except Exception as e:
        # Headers are already sent; the client sees the stream end early.
        logger.error(f"Stream ended early: {e}")
    finally:
        await _close(chunks)


async def _close(chunks: AsyncIterator[ChatChunk]) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is not None:
        await aclose()


async def stream_text(chunks: AsyncIterator[ChatChunk]) -> StreamingResponse:
    """Commit to a text response once the provider has produced its first text.

    Errors raised before that point propagate to the caller, which can still
    answer with a structured error. Empty fragments are never written.
    """
    try:
        first = await _first_text(chunks)
    except BaseException:
        await _close(chunks)
        raise

    return StreamingResponse(_relay(first, chunks), media_type=TEXT_STREAM_MEDIA_TYPE)
