"""
Subjects, subject data and the Free-plan course limit.
"""


def _create(client, headers, slug, name=None):
    return client.post("/api/subjects", json={"slug": slug, "name": name or slug.title()}, headers=headers)


def test_anonymous_list_is_empty(client):
    response = client.get("/api/subjects")
    assert response.json() == {"ok": True, "subjects": []}


def test_create_and_list_newest_first(client, user_headers):
    assert _create(client, user_headers, "biology").status_code == 200
    assert _create(client, user_headers, "chemistry").status_code == 200

    subjects = client.get("/api/subjects", headers=user_headers).json()["subjects"]

    assert [s["slug"] for s in subjects] == ["chemistry", "biology"]
    assert subjects[0]["name"] == "Chemistry"
    assert subjects[0]["createdAt"]
    assert subjects[0]["sharedByUsername"] is None


def test_post_existing_slug_renames(client, user_headers):
    _create(client, user_headers, "biology", "Bio")
    response = _create(client, user_headers, "biology", "Biology 101")

    assert response.json()["subject"]["name"] == "Biology 101"
    assert len(client.get("/api/subjects", headers=user_headers).json()["subjects"]) == 1


def test_free_plan_course_limit(client, user_headers):
    for slug in ("one", "two", "three"):
        assert _create(client, user_headers, slug).status_code == 200

    response = _create(client, user_headers, "four")

    assert response.status_code == 403
    assert "limited to 3 courses" in response.json()["error"]
    # Renaming an existing course is not creation
    assert _create(client, user_headers, "one", "First").status_code == 200


def test_paid_plan_has_no_course_limit(client, premium_headers):
    for index in range(5):
        assert _create(client, premium_headers, f"course-{index}").status_code == 200


def test_subjects_are_private(client, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    _create(client, alice, "biology")

    assert client.get("/api/subjects", headers=bob).json()["subjects"] == []
    assert client.put("/api/subjects", json={"slug": "biology", "name": "Mine"}, headers=bob).status_code == 404


def test_rename(client, user_headers):
    _create(client, user_headers, "biology")
    response = client.put("/api/subjects", json={"slug": "biology", "name": "Cell Biology"}, headers=user_headers)

    assert response.json() == {"ok": True}
    assert client.get("/api/subjects", headers=user_headers).json()["subjects"][0]["name"] == "Cell Biology"


def test_delete_subject_removes_data_and_exam_history(client, user_headers):
    _create(client, user_headers, "biology")
    client.put("/api/subject-data", json={"slug": "biology", "data": {"subject": "Biology"}}, headers=user_headers)
    client.post(
        "/api/exam-snipe/history",
        json={"slug": "bio-exams", "courseName": "Biology", "subjectSlug": "biology"},
        headers=user_headers,
    )

    response = client.delete("/api/subjects", params={"slug": "biology"}, headers=user_headers)

    assert response.json() == {"ok": True}
    assert client.get("/api/subjects", headers=user_headers).json()["subjects"] == []
    assert client.get("/api/subject-data", params={"slug": "biology"}, headers=user_headers).json()["data"] is None
    assert client.get("/api/exam-snipe/history", headers=user_headers).json()["history"] == []


def test_delete_requires_slug_and_existing_subject(client, user_headers):
    missing_slug = client.delete("/api/subjects", headers=user_headers)
    unknown = client.delete("/api/subjects", params={"slug": "nope"}, headers=user_headers)

    assert missing_slug.status_code == 400
    assert missing_slug.json()["error"] == "Missing slug"
    assert unknown.status_code == 404


def test_delete_subject_data_only(client, user_headers):
    _create(client, user_headers, "biology")
    client.put("/api/subject-data", json={"slug": "biology", "data": {"subject": "Biology"}}, headers=user_headers)

    response = client.delete("/api/subjects/data", params={"slug": "biology"}, headers=user_headers)

    assert response.json() == {"ok": True}
    assert len(client.get("/api/subjects", headers=user_headers).json()["subjects"]) == 1
    again = client.delete("/api/subjects/data", params={"slug": "biology"}, headers=user_headers)
    assert again.status_code == 404


def test_saved_data_is_slimmed(client, user_headers):
    data = {
        "subject": "Biology",
        "files": [{"name": "notes.pdf", "id": "f1", "data": "JVBERi0xLjQK..."}],
        "combinedText": "x" * 250_000,
        "nodes": {
            "Cells": {
                "rawLessonJson": ["{}"],
                "lessons": [{"title": "Intro", "body": "...", "rawLessonJson": "{...}"}],
            }
        },
    }

    stored = client.put("/api/subject-data", json={"slug": "biology", "data": data}, headers=user_headers).json()["data"]

    assert stored["files"] == [{"name": "notes.pdf", "id": "f1"}]
    assert len(stored["combinedText"]) == 200_000
    assert stored["nodes"]["Cells"]["rawLessonJson"] == []
    assert stored["nodes"]["Cells"]["lessons"][0]["rawLessonJson"] is None
    assert stored["nodes"]["Cells"]["lessons"][0]["body"] == "..."

    fetched = client.get("/api/subject-data", params={"slug": "biology"}, headers=user_headers).json()["data"]
    assert fetched == stored


def test_get_subject_data_requires_slug(client, user_headers):
    response = client.get("/api/subject-data", headers=user_headers)
    assert response.status_code == 400


def test_sync_merges_surge_log(client, user_headers):
    server = {
        "subject": "Biology",
        "topics": ["Cells"],
        "surgeLog": [{"sessionId": "s1", "timestamp": 1}, {"sessionId": "s2", "timestamp": 2}],
    }
    client.put("/api/subject-data", json={"slug": "biology", "data": server}, headers=user_headers)

    local = {
        "topics": ["Cells", "Genetics"],
        "surgeLog": [{"sessionId": "s2", "timestamp": 20}, {"sessionId": "s3", "timestamp": 3}],
    }
    merged = client.post(
        "/api/subject-data/sync", json={"slug": "biology", "data": local}, headers=user_headers
    ).json()["data"]

    assert merged["subject"] == "Biology"
    assert merged["topics"] == ["Cells", "Genetics"]
    assert [(e["sessionId"], e["timestamp"]) for e in merged["surgeLog"]] == [("s1", 1), ("s2", 20), ("s3", 3)]


def test_sync_with_empty_local_log_clears_it(client, user_headers):
    client.put(
        "/api/subject-data",
        json={"slug": "biology", "data": {"surgeLog": [{"sessionId": "s1", "timestamp": 1}]}},
        headers=user_headers,
    )
    merged = client.post(
        "/api/subject-data/sync", json={"slug": "biology", "data": {"surgeLog": []}}, headers=user_headers
    ).json()["data"]

    assert merged["surgeLog"] == []


def test_subscription_info_counts_created_courses(client, user_headers):
    _create(client, user_headers, "biology")
    info = client.get("/api/subscription/info", headers=user_headers).json()

    assert info["subscription"]["level"] == "Free"
    assert info["limits"]["maxCourses"] == 3
    assert info["usage"]["coursesCreated"] == 1
