import json

import httpx
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from conftest import TEST_DATABASE_URL, StubLLM, make_profile
from careerpath.core import database
from careerpath.core.config import get_settings
from careerpath.main import app
from careerpath.models.notification_delivery import NotificationDelivery
from careerpath.schemas.profile import StudentProfileIn
from careerpath.services import notifications
from careerpath.services.notifications import (
    NotificationService,
    build_payload,
    delivery_stats,
    get_notifier,
    sign_payload,
    verify_signature,
)
from careerpath.services.recommendation_engine import RecommendationEngine
from careerpath.workers import notifications as notification_tasks

WEBHOOK_URL = "https://hooks.example.com/careers"
N8N_URL = "https://n8n.example.com/webhook/careers"


class Recorder:
    """MockTransport handler answering with a fixed sequence of status codes."""

    def __init__(self, *statuses):
        self.statuses = list(statuses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, json={"ok": status < 300})


@pytest.fixture()
def webhook_settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "NOTIFICATION_WEBHOOK_URL", WEBHOOK_URL)
    monkeypatch.setattr(settings, "N8N_WEBHOOK_URL", "")
    return settings


@pytest.fixture()
def use_notifier(monkeypatch):
    """Route both the API and the (eager) delivery task through one service."""
    monkeypatch.setattr(
        database,
        "get_sync_session",
        lambda: Session(create_engine(database.sync_database_url(TEST_DATABASE_URL), poolclass=NullPool)),
    )

    def install(handler) -> NotificationService:
        service = _service(handler)
        app.dependency_overrides[get_notifier] = lambda: service
        monkeypatch.setattr(notifications, "get_notifier", lambda: service)
        return service

    yield install
    app.dependency_overrides.pop(get_notifier, None)


def _service(handler) -> NotificationService:
    return NotificationService(transport=httpx.MockTransport(handler), sleep=lambda _: None)


async def _payload():
    profile = StudentProfileIn.model_validate(make_profile())
    result = await RecommendationEngine(llm=StubLLM()).generate(profile, "profile_n_1", use_llm=False)
    return build_payload("profile_n_1", profile, result)


def test_signature_round_trip():
    body = b'{"event": "x"}'
    signature = sign_payload(body, "s3cret")
    assert verify_signature(body, f"sha256={signature}", "s3cret")
    assert verify_signature(body, signature, "s3cret")
    assert not verify_signature(body, "sha256=deadbeef", "s3cret")
    assert not verify_signature(body, None, "s3cret")
    assert not verify_signature(body, f"sha256={signature}", "")


@pytest.mark.asyncio
async def test_payload_carries_no_student_name():
    payload = await _payload()
    assert payload["event"] == "career_recommendations_generated"
    assert payload["student"]["region"] == "Maharashtra"
    assert payload["recommendations"][0]["id"] == "software-engineer"
    assert payload["n8n_workflow"]["top_career"] == "Software Engineer"
    assert "Aarav" not in json.dumps(payload)


@pytest.mark.asyncio
async def test_log_only_when_nothing_configured(db_session, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "NOTIFICATION_WEBHOOK_URL", "")
    monkeypatch.setattr(settings, "N8N_WEBHOOK_URL", "")
    recorder = Recorder(200)

    deliveries = await _service(recorder).dispatch(db_session, await _payload(), "profile_n_1")

    assert [d.channel for d in deliveries] == ["log"]
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_signed_webhook_delivery(webhook_settings):
    recorder = Recorder(200)
    deliveries = _service(recorder).deliver(await _payload(), "profile_n_1")

    assert len(deliveries) == 1
    webhook = deliveries[0]
    assert webhook.channel == "webhook"
    assert webhook.success
    assert webhook.status_code == 200
    assert webhook.attempts == 1
    assert webhook.profile_id == "profile_n_1"

    request = recorder.requests[0]
    assert str(request.url) == WEBHOOK_URL
    assert request.headers["X-Event-Type"] == "career_recommendations_generated"
    assert verify_signature(
        request.content,
        request.headers["X-Webhook-Signature"],
        webhook_settings.NOTIFICATION_WEBHOOK_SECRET,
    )


@pytest.mark.asyncio
async def test_n8n_channel_is_unsigned(webhook_settings, monkeypatch):
    monkeypatch.setattr(webhook_settings, "NOTIFICATION_WEBHOOK_URL", "")
    monkeypatch.setattr(webhook_settings, "N8N_WEBHOOK_URL", N8N_URL)
    recorder = Recorder(202)

    deliveries = _service(recorder).deliver(await _payload())

    assert deliveries[-1].channel == "n8n"
    assert "X-Webhook-Signature" not in recorder.requests[0].headers


@pytest.mark.asyncio
async def test_retries_until_success(webhook_settings):
    recorder = Recorder(500, 503, 200)
    sleeps = []
    service = NotificationService(transport=httpx.MockTransport(recorder), sleep=sleeps.append)

    deliveries = service.deliver(await _payload())

    assert deliveries[-1].success
    assert deliveries[-1].attempts == 3
    assert len(recorder.requests) == 3
    delay = webhook_settings.NOTIFICATION_RETRY_DELAY_SECONDS
    assert sleeps == [delay, delay * 2]


@pytest.mark.asyncio
async def test_gives_up_and_records_failure(db_session, webhook_settings):
    recorder = Recorder(500)
    deliveries = await _service(recorder).dispatch(db_session, await _payload())
    await db_session.commit()

    failed = deliveries[-1]
    assert not failed.success
    assert failed.error == "HTTP 500"
    assert failed.attempts == webhook_settings.NOTIFICATION_RETRY_ATTEMPTS

    stats = await delivery_stats(db_session)
    assert stats == {"total": 2, "success": 1, "failure": 1, "success_rate": 50.0}


@pytest.mark.asyncio
async def test_connection_errors_are_recorded(webhook_settings):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    deliveries = _service(refuse).deliver(await _payload())
    assert not deliveries[-1].success
    assert deliveries[-1].status_code is None
    assert deliveries[-1].error.startswith("ConnectError")


# --- delivery task ---


@pytest.mark.asyncio
async def test_profile_creation_enqueues_delivery(client, webhook_settings, monkeypatch):
    recorder = Recorder(200)
    app.dependency_overrides[get_notifier] = lambda: _service(recorder)
    queued = []
    monkeypatch.setattr(notification_tasks.deliver_recommendations, "delay", queued.append)

    created = await client.post("/api/v1/profiles", json=make_profile())

    assert created.status_code == 201
    assert queued == [created.json()["profile_id"]]
    # Nothing is sent from the request itself
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_no_delivery_queued_without_channels(client, monkeypatch):
    queued = []
    monkeypatch.setattr(notification_tasks.deliver_recommendations, "delay", queued.append)

    created = await client.post("/api/v1/profiles", json=make_profile())

    assert created.status_code == 201
    assert queued == []


@pytest.mark.asyncio
async def test_task_sends_stored_recommendations(client, db_session, webhook_settings, use_notifier):
    recorder = Recorder(200)
    use_notifier(recorder)

    created = await client.post("/api/v1/profiles", json=make_profile())
    profile_id = created.json()["profile_id"]

    assert len(recorder.requests) == 1
    sent = json.loads(recorder.requests[0].content)
    assert sent["student"]["profile_id"] == profile_id
    assert sent["recommendations"][0]["id"] == "software-engineer"

    rows = (await db_session.execute(select(NotificationDelivery))).scalars().all()
    assert sorted((r.channel, r.success) for r in rows) == [("log", True), ("webhook", True)]


@pytest.mark.asyncio
async def test_failed_webhook_is_recorded_for_new_profile(client, db_session, webhook_settings, use_notifier):
    use_notifier(Recorder(500))

    created = await client.post("/api/v1/profiles", json=make_profile())
    assert created.status_code == 201
    profile_id = created.json()["profile_id"]

    rows = (
        await db_session.execute(
            select(NotificationDelivery).where(NotificationDelivery.channel == "webhook")
        )
    ).scalars().all()
    assert len(rows) == 1
    assert rows[0].profile_id == profile_id
    assert rows[0].success is False
    assert rows[0].error == "HTTP 500"
    assert rows[0].attempts == webhook_settings.NOTIFICATION_RETRY_ATTEMPTS


@pytest.mark.asyncio
async def test_task_skips_unknown_profile(db_session, webhook_settings, use_notifier):
    recorder = Recorder(200)
    use_notifier(recorder)

    assert notification_tasks.deliver_recommendations("profile_x_missing") == {
        "status": "done",
        "delivered": 0,
    }
    assert recorder.requests == []


# --- API ---


@pytest.mark.asyncio
async def test_notify_profile(client, counselor_headers, webhook_settings, use_notifier):
    recorder = Recorder(200)
    use_notifier(recorder)
    created = await client.post("/api/v1/profiles", json=make_profile())
    profile_id = created.json()["profile_id"]

    res = await client.post("/api/v1/notify", headers=counselor_headers, json={"profile_id": profile_id})
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert [d["channel"] for d in body["deliveries"]] == ["log", "webhook"]
    sent = json.loads(recorder.requests[-1].content)
    assert sent["student"]["profile_id"] == profile_id


@pytest.mark.asyncio
async def test_notify_partial_failure_is_207(client, counselor_headers, webhook_settings, use_notifier, monkeypatch):
    monkeypatch.setattr(webhook_settings, "N8N_WEBHOOK_URL", N8N_URL)

    def handler(request):
        status = 200 if request.url.host == "hooks.example.com" else 500
        return httpx.Response(status)

    use_notifier(handler)
    created = await client.post("/api/v1/profiles", json=make_profile())
    assert created.status_code == 201
    profile_id = created.json()["profile_id"]

    res = await client.post("/api/v1/notify", headers=counselor_headers, json={"profile_id": profile_id})
    assert res.status_code == 207
    assert res.json()["success"] is False


@pytest.mark.asyncio
async def test_notify_all_failed_is_502(client, counselor_headers, webhook_settings, use_notifier):
    use_notifier(Recorder(500))
    created = await client.post("/api/v1/profiles", json=make_profile())
    assert created.status_code == 201
    profile_id = created.json()["profile_id"]

    res = await client.post("/api/v1/notify", headers=counselor_headers, json={"profile_id": profile_id})
    assert res.status_code == 502
    assert res.json()["deliveries"][-1]["error"] == "HTTP 500"


@pytest.mark.asyncio
async def test_notify_unknown_profile(client, counselor_headers):
    res = await client.post(
        "/api/v1/notify", headers=counselor_headers, json={"profile_id": "profile_x_abcdefghi"}
    )
    assert res.status_code == 404
    assert res.json()["code"] == "PROFILE_NOT_FOUND"


@pytest.mark.asyncio
async def test_notify_requires_staff(client, student_data):
    headers, _ = student_data
    res = await client.post("/api/v1/notify", headers=headers, json={"profile_id": "x"})
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_send_test_admin_only(client, admin_headers, counselor_headers):
    assert (await client.post("/api/v1/notify/test", headers=counselor_headers)).status_code == 403

    res = await client.post("/api/v1/notify/test", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["deliveries"][0]["channel"] == "log"


@pytest.mark.asyncio
async def test_stats_after_profile_creation(client, counselor_headers):
    await client.post("/api/v1/profiles", json=make_profile())

    res = await client.get("/api/v1/notify/stats", headers=counselor_headers)
    assert res.json() == {"total": 1, "success": 1, "failure": 0, "success_rate": 100.0}


@pytest.mark.asyncio
async def test_health(client):
    res = await client.get("/api/v1/notify/health")
    assert res.status_code == 200
    assert res.json()["channels"][0] == "log"


@pytest.mark.asyncio
async def test_receive_accepts_signed_callback(client):
    body = json.dumps({"event": "counselor_assigned"}).encode()
    signature = sign_payload(body, get_settings().NOTIFICATION_WEBHOOK_SECRET)

    res = await client.post(
        "/api/v1/notify/receive",
        content=body,
        headers={"X-Webhook-Signature": f"sha256={signature}", "Content-Type": "application/json"},
    )
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_receive_rejects_bad_signature(client):
    res = await client.post(
        "/api/v1/notify/receive",
        content=b'{"event": "x"}',
        headers={"X-Webhook-Signature": "sha256=forged"},
    )
    assert res.status_code == 401
    assert res.json()["code"] == "INVALID_SIGNATURE"


@pytest.mark.asyncio
async def test_receive_rejects_invalid_json(client):
    body = b"not json"
    signature = sign_payload(body, get_settings().NOTIFICATION_WEBHOOK_SECRET)
    res = await client.post(
        "/api/v1/notify/receive",
        content=body,
        headers={"X-Webhook-Signature": f"sha256={signature}"},
    )
    assert res.status_code == 400


def test_send_email_skipped_without_api_key(monkeypatch):
    monkeypatch.setattr(get_settings(), "RESEND_API_KEY", "")
    result = notification_tasks.send_email("student@example.com", "Hello", "<p>Hi</p>")
    assert result == {"status": "skipped", "reason": "no_api_key"}


def test_send_email_posts_to_resend(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test_key")
    calls = []

    def fake_post(url, headers, json, timeout):
        calls.append({"url": url, "headers": headers, "json": json})
        return httpx.Response(200, request=httpx.Request("POST", url))

    monkeypatch.setattr(notification_tasks.httpx, "post", fake_post)
    result = notification_tasks.send_email("student@example.com", "Hello", "<p>Hi</p>")

    assert result == {"status": "sent"}
    assert calls[0]["url"] == settings.RESEND_API_URL
    assert calls[0]["headers"]["Authorization"] == "Bearer re_test_key"
    assert calls[0]["json"]["to"] == ["student@example.com"]
    assert calls[0]["json"]["from"] == settings.EMAIL_FROM


def test_send_email_reports_provider_errors(monkeypatch):
    monkeypatch.setattr(get_settings(), "RESEND_API_KEY", "re_test_key")

    def fake_post(url, **kwargs):
        return httpx.Response(422, request=httpx.Request("POST", url))

    monkeypatch.setattr(notification_tasks.httpx, "post", fake_post)
    result = notification_tasks.send_email("student@example.com", "Hello", "<p>Hi</p>")

    assert result["status"] == "error"
    assert "422" in result["error"]
