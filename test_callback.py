import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from honeyintel.db.repository import SessionStore
from honeyintel.engine.callback import (
    build_agent_notes,
    build_callback_payload,
    dispatch_report,
    send_callback,
    should_report,
)
from honeyintel.models.schemas import IntelligenceRecord, SessionRecord, SessionState

CONFIG = SimpleNamespace(CALLBACK_TURN_THRESHOLD=6, CALLBACK_INTEL_TURN_THRESHOLD=3)
CALLBACK_URL = "http://callback.test/result"


@pytest.fixture
def store(tmp_path):
    return SessionStore(str(tmp_path / "sessions.db"))


def _session(**kwargs):
    return SessionRecord(session_id="s1", **kwargs)


def test_should_report():
    assert should_report(_session(state=SessionState.FLAGGED, turn_count=6), CONFIG)
    assert not should_report(_session(state=SessionState.ACTIVE, turn_count=10), CONFIG)
    assert not should_report(_session(state=SessionState.FLAGGED, turn_count=10, callback_sent=True), CONFIG)

    intel = IntelligenceRecord(upi_ids=["a1@ybl"])
    assert should_report(_session(state=SessionState.FLAGGED, turn_count=3, intelligence=intel), CONFIG)
    assert not should_report(_session(state=SessionState.FLAGGED, turn_count=2, intelligence=intel), CONFIG)

    keywords_only = IntelligenceRecord(suspicious_keywords=["otp"])
    assert not should_report(_session(state=SessionState.FLAGGED, turn_count=3, intelligence=keywords_only), CONFIG)


def test_callback_payload():
    intel = IntelligenceRecord(upi_ids=["a1@ybl"], phishing_links=["http://x.xyz"], suspicious_keywords=["otp"])
    session = _session(state=SessionState.FLAGGED, turn_count=4, intelligence=intel, created_at=100.0, updated_at=160.0)

    payload = build_callback_payload(session)
    assert payload.sessionId == "s1"
    assert payload.scamDetected
    assert payload.totalMessagesExchanged == 4
    assert payload.extractedIntelligence["upiIds"] == ["a1@ybl"]
    assert payload.extractedIntelligence["bankAccounts"] == []
    assert payload.engagementMetrics == {"totalMessagesExchanged": 4, "engagementDurationSeconds": 60}
    assert payload.agentNotes == build_agent_notes(session)
    assert "UPI: a1@ybl" in payload.agentNotes
    assert "Links: 1" in payload.agentNotes
    assert "Scam: YES" in payload.agentNotes


def test_send_callback_posts_payload():
    received = []

    def handler(request):
        received.append(json.loads(request.content))
        return httpx.Response(200, json={"status": "ok"})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            payload = build_callback_payload(_session(state=SessionState.FLAGGED, turn_count=6))
            return await send_callback(payload, url=CALLBACK_URL, client=client)

    result = asyncio.run(run())
    assert result["response"] == {"status": "ok"}
    assert received[0]["sessionId"] == "s1"
    assert received[0]["scamDetected"] is True


def test_dispatch_report_marks_session(store):
    def handler(request):
        return httpx.Response(200, json={"status": "ok"})

    async def run():
        await store.merge("s1", IntelligenceRecord(upi_ids=["a1@ybl"]), turn_key="t1")
        await store.flag("s1")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sent = await dispatch_report(store, "s1", url=CALLBACK_URL, client=client)
        return sent, await store.load("s1")

    sent, session = asyncio.run(run())
    assert sent
    assert session.callback_sent


def test_dispatch_report_failure_resets_flag(store):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    async def run():
        await store.merge("s1", IntelligenceRecord(upi_ids=["a1@ybl"]), turn_key="t1")
        await store.flag("s1")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sent = await dispatch_report(store, "s1", url=CALLBACK_URL, client=client)
        return sent, await store.load("s1")

    sent, session = asyncio.run(run())
    assert not sent
    assert not session.callback_sent
    assert len(calls) == 3


def test_concurrent_dispatch_posts_once(store):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"status": "ok"})

    async def run():
        await store.merge("s1", IntelligenceRecord(upi_ids=["a1@ybl"]), turn_key="t1")
        await store.flag("s1")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await asyncio.gather(
                dispatch_report(store, "s1", url=CALLBACK_URL, client=client),
                dispatch_report(store, "s1", url=CALLBACK_URL, client=client),
            )

    results = asyncio.run(run())
    assert sorted(results) == [False, True]
    assert len(calls) == 1
