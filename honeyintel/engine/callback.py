from typing import Any, Dict, Optional

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from honeyintel.core.config import settings
from honeyintel.core.logging import get_logger
from honeyintel.models.schemas import CallbackPayload, SessionRecord, SessionState

logger = get_logger(__name__)

NOTE_KEYWORD_LIMIT = 5


def should_report(session: SessionRecord, config=settings) -> bool:
    """
    A flagged session is reported once: after enough turns, or earlier when
    high-value intelligence has already been captured.
    """
    if session.state is not SessionState.FLAGGED or session.callback_sent:
        return False
    if session.turn_count >= config.CALLBACK_TURN_THRESHOLD:
        return True
    return (
        session.turn_count >= config.CALLBACK_INTEL_TURN_THRESHOLD
        and session.intelligence.has_high_value_intel()
    )


def build_agent_notes(session: SessionRecord) -> str:
    intel = session.intelligence
    notes = []
    if intel.emails:
        notes.append(f"Emails: {', '.join(intel.emails)}")
    if intel.upi_ids:
        notes.append(f"UPI: {', '.join(intel.upi_ids)}")
    if intel.phone_numbers:
        notes.append(f"Phone: {', '.join(intel.phone_numbers)}")
    if intel.phishing_links:
        notes.append(f"Links: {len(intel.phishing_links)}")
    if intel.bank_accounts:
        notes.append(f"Accounts: {len(intel.bank_accounts)}")
    if intel.suspicious_keywords:
        notes.append(f"Keywords: {', '.join(intel.suspicious_keywords[:NOTE_KEYWORD_LIMIT])}")
    notes.append(f"Turns: {session.turn_count}")
    notes.append(f"Scam: {'YES' if session.state is SessionState.FLAGGED else 'NO'}")
    return " | ".join(notes)


def build_callback_payload(session: SessionRecord) -> CallbackPayload:
    duration = max(0, int(session.updated_at - session.created_at))
    return CallbackPayload(
        sessionId=session.session_id,
        scamDetected=session.state is SessionState.FLAGGED,
        totalMessagesExchanged=session.turn_count,
        extractedIntelligence=session.intelligence.to_payload(),
        engagementMetrics={
            "totalMessagesExchanged": session.turn_count,
            "engagementDurationSeconds": duration,
        },
        agentNotes=build_agent_notes(session),
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception_type(httpx.HTTPError),
    reraise=True
)
async def _post(client: httpx.AsyncClient, url: str, body: Dict[str, Any]) -> httpx.Response:
    response = await client.post(url, json=body)
    response.raise_for_status()
    return response


async def send_callback(
    payload: CallbackPayload,
    url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """POSTs the final report. Raises httpx.HTTPError once retries are exhausted."""
    url = url or settings.CALLBACK_URL
    body = payload.model_dump()
    logger.info("Sending callback", extra={"session_id": payload.sessionId, "url": url})

    if client is not None:
        response = await _post(client, url, body)
    else:
        async with httpx.AsyncClient(timeout=settings.CALLBACK_TIMEOUT_SECONDS) as owned:
            response = await _post(owned, url, body)

    try:
        reply = response.json()
    except ValueError:
        reply = {"status": response.status_code}
    logger.info("Callback delivered", extra={"session_id": payload.sessionId, "status": response.status_code})
    return {"payload": body, "response": reply}


async def dispatch_report(
    store,
    session_id: str,
    url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """
    Sends the report for `session_id` at most once. The sent flag is set before
    the request and cleared again on failure so a later turn can retry.
    """
    session = await store.claim_callback(session_id)
    if session is None:
        logger.info("Callback already claimed", extra={"session_id": session_id})
        return False
    try:
        await send_callback(build_callback_payload(session), url=url, client=client)
    except Exception as e:
        logger.error(f"Callback failed: {e}", extra={"session_id": session_id})
        await store.mark_callback(session_id, False)
        return False
    return True
