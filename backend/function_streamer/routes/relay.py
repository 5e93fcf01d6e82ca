from fastapi import APIRouter, HTTPException, Request

from ..errors import FramingError
from ..services.relay_store import (
    open_stream as svc_open_stream,
    complete_stream as svc_complete_stream,
    get_stream as svc_get_stream,
    list_streams as svc_list_streams,
)

router = APIRouter()


@router.api_route("/.stream/{request_id}", methods=["POST", "PUT"])
async def receive_stream(request_id: str, request: Request):
    decoder = svc_open_stream(request_id)
    received = 0
    try:
        async for chunk in request.stream():
            received += len(chunk)
            decoder.feed(chunk)
    except FramingError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not decoder.complete:
        raise HTTPException(status_code=400, detail="stream ended before metadata frame")
    svc_complete_stream(request_id)
    return {"ok": True, "bytes": received}


@router.get("/api/streams")
async def list_streams():
    return {"streams": [record.model_dump() for record in svc_list_streams()]}


@router.get("/api/streams/{request_id}")
async def get_stream(request_id: str):
    try:
        return svc_get_stream(request_id).model_dump()
    except KeyError:
        raise HTTPException(status_code=404, detail="stream not found")
