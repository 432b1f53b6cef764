"""
Merging a client's cached subject data into the server copy.
"""
from services.subject_merge import merge_subject_data


def test_local_keys_win_and_inputs_are_untouched():
    server = {"subject": "Bio", "topics": ["a"], "nodes": {"a": {"done": False}}}
    local = {"topics": ["a", "b"], "nodes": {"a": {"done": True}}}

    merged = merge_subject_data(server, local)

    assert merged == {"subject": "Bio", "topics": ["a", "b"], "nodes": {"a": {"done": True}}, "surgeLog": []}
    merged["nodes"]["a"]["done"] = "changed"
    assert local["nodes"]["a"]["done"] is True
    assert server["nodes"]["a"]["done"] is False


def test_surge_log_matches_sessions_and_appends_new_ones():
    server = {"surgeLog": [{"sessionId": "s1", "timestamp": 1, "score": 3}, {"sessionId": "s2", "timestamp": 2}]}
    local = {"surgeLog": [{"sessionId": "s1", "timestamp": 10, "score": 99}, {"sessionId": "s3", "timestamp": 3}]}

    merged = merge_subject_data(server, local)["surgeLog"]

    # Only the timestamp is taken from the local copy of a known session
    assert merged == [
        {"sessionId": "s1", "timestamp": 10, "score": 3},
        {"sessionId": "s2", "timestamp": 2},
        {"sessionId": "s3", "timestamp": 3},
    ]


def test_empty_local_surge_log_clears():
    merged = merge_subject_data({"surgeLog": [{"sessionId": "s1"}]}, {"surgeLog": []})
    assert merged["surgeLog"] == []


def test_missing_local_surge_log_keeps_server():
    server_log = [{"sessionId": "s1"}]
    assert merge_subject_data({"surgeLog": server_log}, {"topics": []})["surgeLog"] == server_log


def test_local_log_used_when_server_has_none():
    local_log = [{"sessionId": "s1"}]
    assert merge_subject_data({}, {"surgeLog": local_log})["surgeLog"] == local_log
    assert merge_subject_data(None, None) == {"surgeLog": []}
