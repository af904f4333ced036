import uuid

from financeai.main import app
from conftest import make_token


def test_chat_requires_authentication(client):
    response = client.post("/api/v1/chat", json={"message": "Hi"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required. Please try again."


def test_chat_rejects_token_signed_with_another_secret(client, user_id):
    headers = {"Authorization": f"Bearer {make_token(user_id, secret='not-the-secret')}"}
    assert client.post("/api/v1/chat", json={"message": "Hi"}, headers=headers).status_code == 401


def test_chat_rejects_expired_token(client, user_id):
    headers = {"Authorization": f"Bearer {make_token(user_id, expires_in=-60)}"}
    assert client.post("/api/v1/chat", json={"message": "Hi"}, headers=headers).status_code == 401


def test_chat_message_validation(client, auth_headers, fake_llm):
    assert client.post("/api/v1/chat", json={}, headers=auth_headers).status_code == 400
    assert client.post("/api/v1/chat", json={"message": "   "}, headers=auth_headers).status_code == 400

    too_long = client.post("/api/v1/chat", json={"message": "x" * 2001}, headers=auth_headers)
    assert too_long.status_code == 400
    assert "2000" in too_long.json()["detail"]

    assert client.post("/api/v1/chat", json={"message": "x" * 2000}, headers=auth_headers).status_code == 200
    assert fake_llm.calls == 1


def test_chat_success(client, auth_headers, fake_llm):
    fake_llm.default = "  Spend less on takeout.  "
    response = client.post(
        "/api/v1/chat",
        json={"message": "How can I save?", "options": {"responseStyle": "concise"}},
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Spend less on takeout."
    assert data["isError"] is False
    assert data["errorType"] is None
    assert data["conversationId"].startswith("chat-")
    assert data["metadata"]["contextUsed"] is True
    assert data["metadata"]["model"] == "fake-model"
    assert 1 <= len(data["metadata"]["suggestedQuestions"]) <= 4
    assert "**RESPONSE STYLE:** concise" in fake_llm.prompts[0]


def test_chat_uses_the_users_own_data(client, auth_headers, fake_llm):
    client.post("/api/v1/transactions", json={
        "date": "2024-04-02", "description": "Groceries run", "category": "Groceries",
        "amount": 42.5, "type": "expense",
    }, headers=auth_headers)
    other_user = {"Authorization": f"Bearer {make_token(uuid.uuid4())}"}
    client.post("/api/v1/transactions", json={
        "date": "2024-04-02", "description": "Someone else", "category": "Travel",
        "amount": 999, "type": "expense",
    }, headers=other_user)

    assert client.post("/api/v1/chat", json={"message": "Summary?"}, headers=auth_headers).status_code == 200
    prompt = fake_llm.prompts[-1]
    assert "- Total Expenses: $42.50" in prompt
    assert "Groceries run" in prompt
    assert "Someone else" not in prompt


def test_degraded_ai_failure_still_returns_200(client, auth_headers, fake_llm, sleeper):
    fake_llm.default = RuntimeError("Rate limit exceeded")
    response = client.post("/api/v1/chat", json={"message": "Hi"}, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["isError"] is True
    assert data["errorType"] == "rate_limit"
    assert data["message"] == "I'm currently handling a lot of requests. Please wait a moment and try again."
    assert data["metadata"]["contextUsed"] is False
    assert fake_llm.calls == 4
    assert sleeper.delays == [1, 2, 4]


def test_session_cookie_authenticates(client, user_id):
    client.cookies.set("sb-access-token", make_token(user_id))
    response = client.post("/api/v1/chat", json={"message": "Hi"})
    assert response.status_code == 200


def test_conversation_memory_over_http(client, auth_headers, fake_llm):
    first = client.post("/api/v1/chat", json={"message": "What is my top category?"}, headers=auth_headers).json()
    conversation_id = first["conversationId"]

    client.post(
        "/api/v1/chat",
        json={"message": "And how do I cut it?", "conversationId": conversation_id},
        headers=auth_headers,
    )
    assert "User: What is my top category?" in fake_llm.prompts[-1]

    listing = client.get("/api/v1/chat/conversations", headers=auth_headers).json()
    assert len(listing) == 1
    assert listing[0]["id"] == conversation_id
    assert listing[0]["title"] == "What is my top category?"
    assert listing[0]["messageCount"] == 4

    detail = client.get(f"/api/v1/chat/conversations/{conversation_id}", headers=auth_headers).json()
    assert [m["isUser"] for m in detail["messages"]] == [True, False, True, False]

    outsider = {"Authorization": f"Bearer {make_token(uuid.uuid4())}"}
    assert client.get(f"/api/v1/chat/conversations/{conversation_id}", headers=outsider).status_code == 404
    assert client.get("/api/v1/chat/conversations", headers=outsider).json() == []

    assert client.delete(f"/api/v1/chat/conversations/{conversation_id}", headers=auth_headers).status_code == 204
    assert client.delete(f"/api/v1/chat/conversations/{conversation_id}", headers=auth_headers).status_code == 404


def test_unexpected_failure_outside_generation_maps_to_500(client, auth_headers):
    async def broken(*args, **kwargs):
        raise RuntimeError("store exploded")

    app.state.chat_service.record_exchange = broken
    response = client.post("/api/v1/chat", json={"message": "Hi"}, headers=auth_headers)
    assert response.status_code == 500
    assert "exploded" not in response.text


def test_rate_limit_escaping_the_service_maps_to_429(client, auth_headers):
    async def limited(*args, **kwargs):
        raise RuntimeError("rate limit exceeded")

    app.state.chat_service.generate_response = limited
    response = client.post("/api/v1/chat", json={"message": "Hi"}, headers=auth_headers)
    assert response.status_code == 429


def test_configuration_failure_is_reported_generically(client, auth_headers):
    async def misconfigured(*args, **kwargs):
        raise RuntimeError("API key not valid. Please pass a valid API key.")

    app.state.chat_service.generate_response = misconfigured
    response = client.post("/api/v1/chat", json={"message": "Hi"}, headers=auth_headers)
    assert response.status_code == 500
    assert response.json()["detail"] == "AI service configuration error"


def test_missing_ai_service_is_a_configuration_error(client, auth_headers):
    del app.state.chat_service
    response = client.post("/api/v1/chat", json={"message": "Hi"}, headers=auth_headers)
    assert response.status_code == 500
    assert response.json()["detail"] == "AI service configuration error"


def test_health_endpoint_reports_llm_status(client, fake_llm):
    data = client.get("/api/v1/chat").json()
    assert data["status"] == "healthy"
    assert data["service"] == "enhanced-ai-chat"
    assert "timestamp" in data

    fake_llm.healthy = False
    assert client.get("/api/v1/chat").json()["status"] == "unhealthy"


def test_root_status(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "Operational"
