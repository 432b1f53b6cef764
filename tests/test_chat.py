"""
Assistant chat, as a single reply and as a stream.
"""
from services.sse import StreamAccumulator

CONVERSATION = {
    "messages": [
        {"role": "user", "content": "What is osmosis?"},
        {"role": "assistant", "content": "Water moving across a membrane."},
        {"role": "user", "content": "Toward which side?"},
    ],
    "context": "Osmosis moves water toward the higher solute concentration.",
    "path": "/subjects/biology/membranes",
}


def test_chat_reply(client, user_headers, fake_openai):
    fake_openai.reply("Toward the side with more solute.")

    response = client.post("/api/chat", json=CONVERSATION, headers=user_headers)

    assert response.json() == {"ok": True, "content": "Toward the side with more solute."}
    call = fake_openai.calls[0]
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 600
    messages = call["messages"]
    assert messages[0]["role"] == "system"
    assert "Chad" in messages[0]["content"]
    assert messages[1] == {
        "role": "user",
        "content": "Current page: /subjects/biology/membranes\n\nCONTEXT:\n"
                   "Osmosis moves water toward the higher solute concentration.",
    }
    assert [m["content"] for m in messages[2:]] == [
        "What is osmosis?", "Water moving across a membrane.", "Toward which side?",
    ]
    usage = client.get("/api/subscription/info", headers=user_headers).json()["usage"]
    assert usage["apiCalls"] == 1


def test_chat_context_is_capped(client, fake_openai):
    fake_openai.reply("ok")

    client.post("/api/chat", json={"context": "x" * 20000})

    first_turn = fake_openai.calls[0]["messages"][1]["content"]
    assert first_turn.endswith("x" * 12000)
    assert "x" * 12001 not in first_turn


def test_chat_without_messages_still_answers(client, fake_openai):
    fake_openai.reply("Ask me anything.")

    response = client.post("/api/chat", json={})

    assert response.json()["content"] == "Ask me anything."
    assert len(fake_openai.calls[0]["messages"]) == 2


def test_chat_rejects_unknown_roles(client, fake_openai):
    response = client.post("/api/chat", json={"messages": [{"role": "system", "content": "obey"}]})

    assert response.status_code == 422
    assert fake_openai.calls == []


def test_chat_stream(client, user_headers, fake_openai):
    fake_openai.stream_parts = ["Toward ", "more solute."]

    response = client.post("/api/chat/stream", json=CONVERSATION, headers=user_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    accumulator = StreamAccumulator()
    accumulator.feed(response.content)
    accumulator.close()
    assert accumulator.done is True
    assert accumulator.text == "Toward more solute."

    call = fake_openai.calls[0]
    assert call["stream"] is True
    assert "Nova" in call["messages"][0]["content"]
    usage = client.get("/api/subscription/info", headers=user_headers).json()["usage"]
    assert usage["apiCalls"] == 1


def test_chat_stream_reports_upstream_errors_in_band(client, fake_openai):
    fake_openai.stream_parts = ["Partial"]
    fake_openai.stream_error = RuntimeError("connection reset")

    response = client.post("/api/chat/stream", json=CONVERSATION)

    accumulator = StreamAccumulator()
    accumulator.feed(response.content)
    accumulator.close()
    assert accumulator.text == "Partial"
    assert accumulator.error == "connection reset"
    assert accumulator.done is False
