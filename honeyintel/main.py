from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, BackgroundTasks, Request, Depends, Security
from fastapi.security import APIKeyHeader
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from honeyintel.models.schemas import IntelligenceRecord, ScammerInput, IntelResponse, SessionState
from honeyintel.engine.graph import build_workflow
from honeyintel.engine.callback import should_report, dispatch_report, build_callback_payload, send_callback
from honeyintel.engine.llm_extractor import ExternalExtractor
from honeyintel.core.config import settings
from honeyintel.core.logging import get_logger
from honeyintel.db.repository import SessionStore

logger = get_logger(__name__)

# Setup rate limiter
limiter = Limiter(key_func=get_remote_address)


def _ensure_runtime(app: FastAPI):
    """Builds whichever collaborators the lifespan did not (e.g. under a bare TestClient)."""
    if not hasattr(app.state, "store"):
        app.state.store = SessionStore()
    if not hasattr(app.state, "extractor"):
        app.state.extractor = ExternalExtractor.from_settings(settings)
    if not hasattr(app.state, "graph"):
        app.state.graph = build_workflow()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Wires the session store, the external extractor and the compiled turn workflow.
    """
    _ensure_runtime(app)
    purged = await app.state.store.purge_expired()
    logger.info("Turn workflow compiled", extra={
        "database": app.state.store.db_path,
        "external_extractor": app.state.extractor.client.initialized,
        "purged_sessions": purged,
    })
    yield
    app.state.store.executor.shutdown(wait=False)


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    lifespan=lifespan
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Authentication scheme - x-api-key header
api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)


async def get_api_key(api_key: str = Security(api_key_header)):
    if api_key == settings.API_KEY:
        return api_key
    raise HTTPException(
        status_code=403, detail="Invalid or Missing API Key"
    )


async def _existing_session(request: Request, session_id: str):
    _ensure_runtime(request.app)
    session = await request.app.state.store.find(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found.")
    return session


@app.get("/")
def health_check():
    return {"status": "active", "service": settings.PROJECT_NAME}


@app.post("/webhook", response_model=IntelResponse, dependencies=[Depends(get_api_key)])
@limiter.limit(settings.RATE_LIMIT)
async def intel_webhook(
    request: Request,
    payload: ScammerInput,
    background_tasks: BackgroundTasks
):
    """
    Main webhook: folds one conversation turn into the session's intelligence.
    """
    try:
        _ensure_runtime(request.app)

        initial_state = {
            "session_id": payload.session_id,
            "message": payload.message,
            "history": payload.conversation_history,
        }
        config = {"configurable": {
            "store": request.app.state.store,
            "extractor": request.app.state.extractor,
        }}
        result_state = await request.app.state.graph.ainvoke(initial_state, config=config)

        session = result_state["session"]
        if should_report(session):
            background_tasks.add_task(dispatch_report, request.app.state.store, session.session_id)

        return IntelResponse(
            status="success",
            sessionId=session.session_id,
            sessionState=session.state,
            totalMessagesExchanged=session.turn_count,
            extractedIntelligence=session.intelligence.to_payload(),
            missingCategories=session.intelligence.missing_categories(),
        )

    except HTTPException as e:
        raise e
    except Exception as e:
        logger.error(f"Webhook Critical Error: {e}", exc_info=True)
        # Structured error response instead of a bare 500
        return IntelResponse(
            status="error",
            sessionId=payload.session_id,
            sessionState=SessionState.NEW,
            totalMessagesExchanged=0,
            extractedIntelligence=IntelligenceRecord().to_payload(),
            missingCategories=IntelligenceRecord().missing_categories(),
        )


@app.get("/sessions/{session_id}", dependencies=[Depends(get_api_key)])
async def get_session(request: Request, session_id: str):
    session = await _existing_session(request, session_id)
    return {
        "sessionId": session.session_id,
        "sessionState": session.state,
        "totalMessagesExchanged": session.turn_count,
        "callbackSent": session.callback_sent,
        "extractedIntelligence": session.intelligence.to_payload(),
        "missingCategories": session.intelligence.missing_categories(),
    }


@app.post("/sessions/{session_id}/flag", dependencies=[Depends(get_api_key)])
async def flag_session(request: Request, session_id: str, background_tasks: BackgroundTasks):
    """
    External scam-detection signal. Flagging never touches the accumulated intelligence.
    """
    await _existing_session(request, session_id)
    session = await request.app.state.store.flag(session_id)
    if should_report(session):
        background_tasks.add_task(dispatch_report, request.app.state.store, session_id)
    return {"sessionId": session_id, "sessionState": session.state}


@app.post("/sessions/{session_id}/finalize", dependencies=[Depends(get_api_key)])
async def finalize_session(request: Request, session_id: str):
    """
    Manual trigger: sends the final report regardless of thresholds.
    """
    session = await _existing_session(request, session_id)
    try:
        result = await send_callback(build_callback_payload(session))
    except Exception as e:
        logger.error(f"Finalize Error: {e}", extra={"session_id": session_id})
        raise HTTPException(status_code=502, detail="Callback delivery failed.")
    await request.app.state.store.mark_callback(session_id, True)
    return {"message": "Final payload sent.", **result}


@app.get("/admin/report", dependencies=[Depends(get_api_key)])
async def get_summary_report(request: Request):
    """
    Admin view: summary of all live sessions.
    """
    _ensure_runtime(request.app)
    stats = await request.app.state.store.get_stats()
    return {
        **stats,
        "status": "Ready for Law Enforcement Export"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("honeyintel.main:app", host="0.0.0.0", port=8000, reload=True)
