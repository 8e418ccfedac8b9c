import hashlib
from typing import Any, Dict, List, Optional, TypedDict

from langchain_core.runnables import RunnableConfig

from honeyintel.core.logging import get_logger
from honeyintel.engine.aggregator import aggregate
from honeyintel.models.schemas import IntelligenceRecord, RawMessage, SessionRecord, Sender

logger = get_logger(__name__)


class TurnState(TypedDict):
    session_id: str
    message: RawMessage
    history: List[Any]
    session: Optional[SessionRecord]
    intel: IntelligenceRecord
    turn_key: Optional[str]


def _collaborator(config: RunnableConfig, name: str):
    return (config or {}).get("configurable", {}).get(name)


def turn_key(message: RawMessage, history_length: int = 0) -> str:
    """
    Identity of one delivered turn, so a redelivery is recognized. Without a
    timestamp the position in the conversation stands in for it.
    """
    digest = hashlib.sha1(message.text.encode("utf-8")).hexdigest()[:16]
    stamp = message.timestamp if message.timestamp is not None else f"h{history_length}"
    return f"{stamp}:{message.sender.value}:{digest}"


async def load_session(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    store = _collaborator(config, "store")
    try:
        session = await store.load(state["session_id"])
    except Exception as e:
        logger.error(f"Error loading session: {e}", extra={"session_id": state["session_id"]})
        session = SessionRecord(session_id=state["session_id"])
    return {"session": session, "turn_key": turn_key(state["message"], len(state.get("history") or []))}


async def extract_intelligence(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Folds the newest message and the counterpart's history into the session's
    accumulated intelligence. The aggregator never raises, so neither does this node.
    """
    session = state.get("session")
    prior = session.intelligence if session is not None else IntelligenceRecord()
    intel = await aggregate(
        state.get("history", []),
        state["message"],
        prior,
        external=_collaborator(config, "extractor"),
    )
    return {"intel": intel}


async def persist_session(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    store = _collaborator(config, "store")
    message = state["message"]
    try:
        # Operator turns are not counted as exchanged messages
        if message.sender is Sender.COUNTERPART:
            session = await store.merge(state["session_id"], state["intel"], turn_key=state.get("turn_key"))
        else:
            await store.set(state["session_id"], state["intel"])
            session = await store.load(state["session_id"])
    except Exception as e:
        logger.error(f"Error saving session: {e}", extra={"session_id": state["session_id"]})
        session = state.get("session")
    return {"session": session}
