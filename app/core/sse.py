import json
from typing import Any, Iterable
from fastapi.responses import StreamingResponse

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse_event(event: str, data: Any) -> str:
    """Encode one named Server-Sent Event"""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


def sse_response(events: Iterable[str]) -> StreamingResponse:
    # Sync iterables are drained in Starlette's threadpool, so blocking Supabase/LLM calls are fine here
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)
