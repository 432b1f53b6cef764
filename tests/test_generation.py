"""
Course generation routes against a stubbed OpenAI client.
"""
import json

from services.course_service import clean_course_name, normalize_topics, strip_code_fence
from services.sse import StreamAccumulator

MATERIAL = (
    "Cells are the basic unit of life. Membranes separate the inside of a cell from its surroundings, "
    "and organelles such as mitochondria produce energy."
)
TOPIC_NAMES = ["Cell theory", "Membranes", "Organelles", "Mitochondria", "Transport", "Cell division"]


def _topics_reply(names, subject="Cell Biology"):
    return json.dumps({
        "subject": subject,
        "topics": [{"name": name, "summary": f"About {name}", "coverage": 72.6} for name in names],
    })


def _usage(client, headers):
    return client.get("/api/subscription/info", headers=headers).json()["usage"]


def _lesson_request(**overrides):
    body = {
        "subject": "Cell Biology",
        "topic": "Membranes",
        "course_context": "An introductory biology course.",
        "combinedText": MATERIAL,
        "lessonsMeta": [{"type": "Full Lesson", "title": "Lipid bilayers"}],
        "lessonIndex": 0,
    }
    body.update(overrides)
    return body


def test_normalize_topics():
    topics = normalize_topics([{"name": "A", "coverage": "140"}, "junk", {"summary": "s", "coverage": -3}])
    assert topics == [
        {"name": "A", "summary": "", "coverage": 100},
        {"name": "Topic", "summary": "s", "coverage": 0},
    ]
    assert normalize_topics(None) == []


def test_clean_course_name():
    assert clean_course_name('"Intro to Cellular and Molecular Biology for Beginners"\nextra') == (
        "Intro to Cellular and Molecular Biology"
    )
    assert clean_course_name("") == ""


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('  {"a": 1} ') == '{"a": 1}'


def test_extract_course(client, user_headers, fake_openai):
    fake_openai.reply(
        '{"code": "de", "name": "German"}',
        _topics_reply(TOPIC_NAMES),
        "A short course about cells.",
    )

    response = client.post(
        "/api/extract",
        data={"subject": "Cell Biology"},
        files=[("files", ("notes.txt", MATERIAL.encode("utf-8"), "text/plain"))],
        headers=user_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["data"]["subject"] == "Cell Biology"
    assert [topic["name"] for topic in body["data"]["topics"]] == TOPIC_NAMES
    assert body["data"]["topics"][0]["coverage"] == 73
    assert body["combinedText"] == f"# notes.txt\n\n{MATERIAL}"
    assert body["files"] == [{"name": "notes.txt"}]
    assert body["course_context"] == "A short course about cells."
    assert body["detected_language_code"] == "de"
    assert body["detected_language_name"] == "German"

    calls = fake_openai.calls
    assert calls[0]["response_format"] == {"type": "json_object"}
    assert calls[1]["response_format"]["type"] == "json_schema"
    assert "Write summaries in German." in calls[1]["messages"][0]["content"]
    assert _usage(client, user_headers)["apiCalls"] == 1


def test_extract_regenerates_short_topic_lists(client, fake_openai):
    fake_openai.reply(
        "not json",
        _topics_reply(TOPIC_NAMES[:2]),
        _topics_reply(TOPIC_NAMES + ["Signalling"]),
        "",
    )

    body = client.post("/api/extract", data={"subject": "Cell Biology"}).json()

    assert len(body["data"]["topics"]) == 7
    assert body["detected_language_code"] == "en"
    assert body["files"] == []
    assert body["course_context"] == ""
    assert "No course material was provided" in fake_openai.calls[1]["messages"][1]["content"]
    assert "AT LEAST 6 topics" in fake_openai.calls[2]["messages"][1]["content"]


def test_extract_keeps_first_attempt_when_retry_is_also_short(client, fake_openai):
    fake_openai.reply("{}", _topics_reply(TOPIC_NAMES[:3]), _topics_reply(TOPIC_NAMES[:1]), "Context")

    body = client.post("/api/extract", data={"subject": "Cell Biology"}).json()

    assert [topic["name"] for topic in body["data"]["topics"]] == TOPIC_NAMES[:3]


def test_lesson_stream(client, premium_headers, fake_openai):
    fake_openai.stream_parts = ['```json\n{"title": "Lipid bilayers"}\n```\n', "# Lipid bilayers\n", "Membranes are..."]

    response = client.post("/api/node-lesson/stream", json=_lesson_request(), headers=premium_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    accumulator = StreamAccumulator()
    accumulator.feed(response.content)
    accumulator.close()
    assert accumulator.done is True
    assert accumulator.error is None
    assert accumulator.final_text() == "# Lipid bilayers\nMembranes are..."

    messages = fake_openai.calls[0]["messages"]
    assert "TOPIC TO TEACH: Membranes" in messages[1]["content"]
    assert "Target lesson: Full Lesson — Lipid bilayers" in messages[1]["content"]
    usage = _usage(client, premium_headers)
    assert usage["lessonsGenerated"] == 1
    assert usage["apiCalls"] == 1


def test_lesson_stream_error_frame_is_not_counted(client, premium_headers, fake_openai):
    fake_openai.stream_parts = ["# Partial"]
    fake_openai.stream_error = RuntimeError("connection reset")

    response = client.post("/api/node-lesson/stream", json=_lesson_request(), headers=premium_headers)

    accumulator = StreamAccumulator()
    accumulator.feed(response.content)
    accumulator.close()
    assert accumulator.text == "# Partial"
    assert accumulator.error == "connection reset"
    assert accumulator.done is False
    assert _usage(client, premium_headers)["lessonsGenerated"] == 0


def test_quick_learn_lesson_needs_no_outline(client, tester_headers, fake_openai):
    fake_openai.stream_parts = ["# Photosynthesis"]

    response = client.post(
        "/api/node-lesson/stream",
        json={"subject": "Quick Learn", "topic": "Photosynthesis"},
        headers=tester_headers,
    )

    assert response.status_code == 200
    assert "standalone Quick Learn lesson" in fake_openai.calls[0]["messages"][1]["content"]


def test_lesson_stream_validation(client, premium_headers, user_headers, fake_openai):
    missing_topic = client.post("/api/node-lesson/stream", json=_lesson_request(topic=""), headers=premium_headers)
    assert missing_topic.status_code == 400
    assert missing_topic.json()["error"] == "Missing topic"

    missing_meta = client.post(
        "/api/node-lesson/stream", json=_lesson_request(lessonsMeta=[]), headers=premium_headers
    )
    assert missing_meta.status_code == 400
    assert missing_meta.json()["error"] == "Missing lessonsMeta"

    free_user = client.post("/api/node-lesson/stream", json=_lesson_request(), headers=user_headers)
    assert free_user.status_code == 403
    assert free_user.json()["error"] == "This feature requires Premium access."
    assert fake_openai.calls == []


def test_topic_suggest(client, premium_headers, fake_openai):
    fake_openai.reply('```json\n{"name": "Osmosis", "overview": "Water movement", "insertPath": ["Transport", 2]}\n```')

    response = client.post(
        "/api/topic-suggest",
        json={
            "subject": "Cell Biology",
            "prompt": "Something about water",
            "tree": {"subject": "Cell Biology", "topics": [{"name": "Transport"}]},
            "fileIds": ["file-1", "file-2", "file-3", "file-4"],
        },
        headers=premium_headers,
    )

    assert response.json() == {
        "ok": True,
        "data": {"name": "Osmosis", "overview": "Water movement", "insertPath": ["Transport", "2"]},
    }
    content = fake_openai.calls[0]["messages"][1]["content"]
    assert content[0]["type"] == "text"
    assert "Something about water" in content[0]["text"]
    assert [part["file"]["file_id"] for part in content[1:]] == ["file-1", "file-2", "file-3"]


def test_topic_suggest_rejects_incomplete_replies(client, premium_headers, fake_openai):
    fake_openai.reply('{"overview": "No name", "insertPath": []}', "not json at all")

    missing_name = client.post("/api/topic-suggest", json={"subject": "Bio", "prompt": "x"}, headers=premium_headers)
    assert missing_name.status_code == 500
    assert missing_name.json()["error"] == "Invalid response format: missing or invalid 'name' field"

    unparseable = client.post("/api/topic-suggest", json={"subject": "Bio", "prompt": "x"}, headers=premium_headers)
    assert unparseable.status_code == 500
    assert unparseable.json()["error"].startswith("Failed to parse topic suggestion")


def test_detect_name_from_json(client, fake_openai):
    fake_openai.reply('"Introduction to Cell and Molecular Biology Basics"')

    response = client.post(
        "/api/course-detect-name", json={"context": MATERIAL, "fallbackTitle": "Bio 101"}
    )

    assert response.json() == {"ok": True, "name": "Introduction to Cell and Molecular Biology"}
    assert "Bio 101" in fake_openai.calls[0]["messages"][0]["content"]


def test_detect_name_falls_back_to_working_title(client, fake_openai):
    fake_openai.reply("")
    response = client.post("/api/course-detect-name", json={"context": MATERIAL, "fallbackTitle": "Bio 101"})
    assert response.json()["name"] == "Bio 101"

    fake_openai.reply("")
    failed = client.post("/api/course-detect-name", json={"context": MATERIAL})
    assert failed.status_code == 500
    assert failed.json()["error"] == "Failed to generate course name"


def test_detect_name_from_uploaded_files(client, fake_openai):
    fake_openai.reply("Cell Biology")

    response = client.post(
        "/api/course-detect-name",
        files=[("files", ("week1.txt", MATERIAL.encode("utf-8"), "text/plain"))],
    )

    assert response.json() == {"ok": True, "name": "Cell Biology"}
    assert "--- week1.txt ---" in fake_openai.calls[0]["messages"][0]["content"]


def test_detect_name_input_errors(client, fake_openai):
    missing = client.post("/api/course-detect-name", json={"fallbackTitle": "Bio"})
    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing context"

    unsupported = client.post(
        "/api/course-detect-name", content=b"plain words", headers={"Content-Type": "text/plain"}
    )
    assert unsupported.status_code == 400
    assert unsupported.json()["error"] == "Unsupported content type"
    assert fake_openai.calls == []


def test_quick_summary(client, user_headers, fake_openai):
    fake_openai.reply("Focus on membranes and energy.")

    response = client.post("/api/course-quick-summary", json={"context": MATERIAL}, headers=user_headers)

    assert response.json() == {"ok": True, "summary": "Focus on membranes and energy."}
    assert _usage(client, user_headers)["apiCalls"] == 1


def test_quick_summary_errors(client, fake_openai):
    missing = client.post("/api/course-quick-summary", json={"context": "   "})
    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing context"

    empty = client.post("/api/course-quick-summary", json={"context": MATERIAL})
    assert empty.status_code == 500
    assert empty.json()["error"] == "Failed to generate summary"


def test_upload_course_files(client, fake_openai):
    response = client.post(
        "/api/upload-course-files",
        files=[("files", ("slides.pdf", b"%PDF-1.4 fake", "application/pdf"))],
    )

    assert response.json() == {"ok": True, "fileIds": ["file-abc123"]}
    uploaded = fake_openai.files.create.call_args.kwargs
    assert uploaded["file"] == ("slides.pdf", b"%PDF-1.4 fake")
    assert uploaded["purpose"] == "assistants"


def test_upstream_failure_is_bad_gateway(client, fake_openai):
    fake_openai.chat.completions.create.side_effect = RuntimeError("upstream down")

    response = client.post("/api/course-quick-summary", json={"context": MATERIAL})

    assert response.status_code == 502
    assert response.json()["type"] == "AIServiceException"


def test_node_plan(client, user_headers, fake_openai):
    plan = {
        "overview_child": "Membranes are the skin of a cell.",
        "lessonsMeta": [{"type": "Foundations", "title": "What a membrane is"}],
    }
    fake_openai.reply(json.dumps(plan))

    response = client.post(
        "/api/node-plan",
        json={
            "subject": "Cell Biology",
            "topic": "Membranes",
            "combinedText": MATERIAL,
            "courseTopics": TOPIC_NAMES,
            "languageName": "French",
        },
        headers=user_headers,
    )

    assert response.json() == {"ok": True, "data": plan}
    call = fake_openai.calls[0]
    assert call["response_format"]["json_schema"]["name"] == "TopicPlan"
    assert "ALL lesson titles in French" in call["messages"][0]["content"]
    user = call["messages"][1]["content"]
    assert user.startswith("Subject: Cell Biology\n\nTopic: Membranes")
    assert "Course topics: Cell theory, Membranes" in user
    assert _usage(client, user_headers)["apiCalls"] == 1


def test_node_plan_tolerates_unusable_replies(client, fake_openai):
    fake_openai.reply("not json at all")

    response = client.post("/api/node-plan", json={"topic": "Membranes"})

    assert response.json() == {"ok": True, "data": {}}
    assert "Subject: (unspecified)" in fake_openai.calls[0]["messages"][1]["content"]


def test_node_plan_requires_topic(client, fake_openai):
    response = client.post("/api/node-plan", json={"subject": "Cell Biology"})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing topic"
    assert fake_openai.calls == []
