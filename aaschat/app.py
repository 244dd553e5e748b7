from __future__ import annotations

import asyncio
from typing import Any, Dict

import orjson
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from aaschat.config import settings
from aaschat.models.chat import ChatRequest, ChatResponse, HubRequest, SessionResponse
from aaschat.services.chat_orchestrator import ChatOrchestrator, TurnResult
from aaschat.services.errors import ChatPipelineError
from aaschat.services.session_manager import session_manager
from aaschat.utils.dataframe_utils import describe_result, preview_result
from aaschat.utils.logger import logger


def orjson_dumps(v: Any, *, default: Any | None = None) -> str:
    return orjson.dumps(v, default=default).decode()


app = FastAPI(default_response_class=JSONResponse)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/healthz")
async def healthz() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/api/sessions", response_model=SessionResponse)
async def create_session() -> SessionResponse:
    await asyncio.to_thread(session_manager.maybe_cleanup)
    try:
        result = await session_manager.create_session()
        return SessionResponse(**result)
    except ChatPipelineError as exc:
        logger.error("Session initialization failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RuntimeError as re:
        raise HTTPException(status_code=503, detail=str(re)) from re


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str) -> Dict[str, str]:
    try:
        await asyncio.to_thread(session_manager.close_session, session_id)
    except KeyError as ke:
        raise HTTPException(status_code=404, detail=str(ke)) from ke
    return {"status": "closed"}


@app.post("/api/chat", response_model=ChatResponse)
async def chat(req: ChatRequest) -> ChatResponse:
    try:
        session = session_manager.get_session(req.session_id)
        turn = await asyncio.to_thread(session.orchestrator.ask, req.message)
        return _chat_response(turn)
    except KeyError as ke:
        raise HTTPException(status_code=404, detail=str(ke)) from ke
    except RuntimeError as re:
        raise HTTPException(status_code=503, detail=str(re)) from re
    except Exception as exc:  # noqa: BLE001
        logger.exception("Chat failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _chat_response(turn: TurnResult) -> ChatResponse:
    query = turn.query if settings.enable_query_output else None
    if not turn.ok:
        return ChatResponse(
            answer=turn.error or "",
            query=query,
            error=turn.error,
            error_kind=turn.error_kind,
            logs=turn.logs,
        )
    return ChatResponse(
        answer=describe_result(turn.result),
        query=query,
        result=preview_result(turn.result, settings.preview_rows),
        logs=turn.logs,
    )


@app.websocket("/ws/chat")
async def chat_hub(websocket: WebSocket) -> None:
    """Realtime channel: one chat session per connection, progress pushed as it happens."""
    await websocket.accept()
    loop = asyncio.get_running_loop()

    async def send(payload: Dict[str, Any]) -> None:
        await websocket.send_text(orjson_dumps(payload))

    def push_log(message: str) -> None:
        # Called from the worker thread running the pipeline
        asyncio.run_coroutine_threadsafe(send({"type": "log", "message": message}), loop).result()

    orchestrator: ChatOrchestrator | None = None
    try:
        while True:
            try:
                request = HubRequest.model_validate_json(await websocket.receive_text())
            except ValidationError:
                await send({"type": "error", "message": "Expected a JSON object with a 'message' field"})
                continue

            try:
                if orchestrator is None:
                    await send({"type": "log", "message": "Initializing service..."})
                    candidate = session_manager.factory(on_progress=push_log)
                    await asyncio.to_thread(candidate.initialize)
                    orchestrator = candidate
                turn = await asyncio.to_thread(orchestrator.ask, request.message)
            except (ChatPipelineError, RuntimeError) as exc:
                await send({"type": "error", "message": str(exc)})
                continue

            if turn.ok:
                await send(
                    {
                        "type": "result",
                        "query": turn.query,
                        "columns": turn.result.columns,
                        "rows": turn.result.to_records(),
                    }
                )
            else:
                await send({"type": "error", "message": turn.error, "kind": turn.error_kind})
    except WebSocketDisconnect:
        logger.info("Hub client disconnected")
    finally:
        if orchestrator is not None:
            await asyncio.to_thread(orchestrator.close)


def run() -> None:
    import uvicorn

    uvicorn.run("aaschat.app:app", host=settings.host, port=settings.port)
