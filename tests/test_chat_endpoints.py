import pytest
from conftest import auth_headers, login_with_otp

from app.core.exceptions import UpstreamError
from app.models import Thread
from app.services.llm_service import LLMService


@pytest.fixture()
def token(client) -> str:
    return login_with_otp(client, "+15551234567", "a@b.com")["token"]


def _chat(client, thread_id, message, headers=None, file_ids=None):
    body = {"threadId": thread_id, "message": message}
    if file_ids is not None:
        body["fileIds"] = file_ids
    return client.post("/api/chat", json=body, headers=headers or {})


def _upload(client, name, content, mime_type, headers=None, thread_id="abc"):
    response = client.post(
        "/api/upload",
        data={"threadId": thread_id},
        files=[("files", (name, content, mime_type))],
        headers=headers or {},
    )
    assert response.status_code == 201, response.text
    return response.json()["files"][0]["id"]


def test_chat_creates_thread_and_persists_both_turns(client, llm_calls):
    response = _chat(client, "abc", "Hello there")

    assert response.status_code == 200, response.text
    assert response.json() == {"reply": "Echo: Hello there", "threadId": "abc"}

    messages = client.get("/api/thread/abc").json()
    assert [(m["role"], m["content"]) for m in messages] == [
        ("user", "Hello there"),
        ("assistant", "Echo: Hello there"),
    ]
    assert llm_calls[0]["history"] == []


def test_follow_up_sends_history(client, llm_calls):
    _chat(client, "abc", "First")
    _chat(client, "abc", "Second")

    assert llm_calls[1]["history"] == [("user", "First"), ("assistant", "Echo: First")]
    assert len(client.get("/api/thread/abc").json()) == 4


def test_thread_title_comes_from_first_message(client):
    _chat(client, "abc", "x" * 150)
    _chat(client, "abc", "later message")

    threads = client.get("/api/thread").json()
    assert threads[0]["title"] == "x" * 100


def test_anonymous_thread_invisible_to_authenticated_user(client, token):
    _chat(client, "abc", "anonymous hello")

    assert client.get("/api/thread", headers=auth_headers(token)).json() == []
    assert client.get("/api/thread/abc", headers=auth_headers(token)).status_code == 404
    assert [t["threadId"] for t in client.get("/api/thread").json()] == ["abc"]


def test_authenticated_thread_invisible_to_anonymous(client, token):
    _chat(client, "mine", "private hello", headers=auth_headers(token))

    assert client.get("/api/thread").json() == []
    assert client.get("/api/thread/mine").status_code == 404
    assert client.delete("/api/thread/mine").status_code == 404
    assert [t["threadId"] for t in client.get("/api/thread", headers=auth_headers(token)).json()] == ["mine"]


def test_threads_listed_newest_first(client):
    _chat(client, "first", "one")
    _chat(client, "second", "two")
    _chat(client, "first", "three")

    assert [t["threadId"] for t in client.get("/api/thread").json()] == ["first", "second"]


def test_create_thread_and_conflict(client):
    created = client.post("/api/thread", json={"threadId": "new-one"})

    assert created.status_code == 201
    assert created.json()["title"] == "New Thread"
    assert client.get("/api/thread/new-one").json() == []

    duplicate = client.post("/api/thread", json={"threadId": "new-one"})
    assert duplicate.status_code == 409


def test_create_thread_generates_id(client):
    created = client.post("/api/thread", json={"title": "Planning"})

    assert created.status_code == 201
    assert created.json()["threadId"]
    assert created.json()["title"] == "Planning"


def test_delete_thread(client, db_session):
    _chat(client, "abc", "hello")

    response = client.delete("/api/thread/abc")

    assert response.status_code == 200
    assert response.json()["message"] == "Thread deleted successfully"
    assert client.get("/api/thread/abc").status_code == 404
    assert db_session.query(Thread).count() == 0


def test_chat_requires_message(client):
    response = client.post("/api/chat", json={"threadId": "abc"})

    assert response.status_code == 400
    assert response.json()["error"] == "Validation error"


def test_failed_model_call_persists_nothing(client, monkeypatch, db_session):
    async def _failing(self, history, prompt, images=None):
        raise UpstreamError("Failed to send message", code="LLM_FAILED")

    monkeypatch.setattr(LLMService, "generate_reply", _failing)

    response = _chat(client, "abc", "hello")

    assert response.status_code == 500
    assert response.json()["code"] == "LLM_FAILED"
    assert db_session.query(Thread).count() == 0


def test_attached_text_file_is_added_to_prompt(client, llm_calls):
    file_id = _upload(client, "notes.txt", b"The launch is on Friday.", "text/plain")

    response = _chat(client, "abc", "When is the launch?", file_ids=[file_id])

    assert response.status_code == 200
    prompt = llm_calls[0]["prompt"]
    assert prompt.startswith("When is the launch?")
    assert "--- Attached Files ---" in prompt
    assert "[File: notes.txt]" in prompt
    assert "The launch is on Friday." in prompt
    assert llm_calls[0]["images"] == []

    # Only the user's own words are stored.
    messages = client.get("/api/thread/abc").json()
    assert messages[0]["content"] == "When is the launch?"


def test_long_file_text_is_truncated(client, llm_calls):
    file_id = _upload(client, "long.txt", b"a" * 16000, "text/plain")

    _chat(client, "abc", "Summarise", file_ids=[file_id])

    prompt = llm_calls[0]["prompt"]
    assert "[truncated]" in prompt
    assert "a" * 15000 in prompt
    assert "a" * 15001 not in prompt


def test_attached_image_goes_to_vision_input(client, llm_calls):
    from io import BytesIO

    from PIL import Image

    buffer = BytesIO()
    Image.new("RGB", (4, 4), color="red").save(buffer, format="PNG")
    file_id = _upload(client, "red.png", buffer.getvalue(), "image/png")

    _chat(client, "abc", "What colour is this?", file_ids=[file_id])

    images = llm_calls[0]["images"]
    assert len(images) == 1
    assert images[0].mime_type == "image/png"
    assert "[Image: red.png]" in llm_calls[0]["prompt"]


def test_other_users_files_are_not_attached(client, token, llm_calls):
    file_id = _upload(client, "secret.txt", b"top secret", "text/plain", headers=auth_headers(token))

    response = _chat(client, "abc", "Read it", file_ids=[file_id, "not-a-uuid"])

    assert response.status_code == 200
    assert llm_calls[0]["prompt"] == "Read it"
