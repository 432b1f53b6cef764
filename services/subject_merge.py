"""
Reconcile a client's cached copy of subject data with the server copy.
"""
import copy
from typing import Any, Dict, List, Optional


def _merge_surge_log(server_log: List[Any], local_log: List[Any]) -> List[Any]:
    local_by_session = {
        entry.get("sessionId"): entry for entry in local_log if isinstance(entry, dict)
    }
    server_sessions = set()
    merged = []
    for entry in server_log:
        if not isinstance(entry, dict):
            merged.append(entry)
            continue
        server_sessions.add(entry.get("sessionId"))
        local_entry = local_by_session.get(entry.get("sessionId"))
        if local_entry is not None:
            # Local timestamps may have been edited by the user
            merged.append({**entry, "timestamp": local_entry.get("timestamp")})
        else:
            merged.append(entry)

    for entry in local_log:
        if not isinstance(entry, dict) or entry.get("sessionId") not in server_sessions:
            merged.append(entry)
    return merged


def merge_subject_data(
    server: Optional[Dict[str, Any]], local: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Merge ``local`` over ``server`` without mutating either.

    Top-level keys from ``local`` win. ``surgeLog`` is special: an explicit
    empty local list means the log was cleared; otherwise server entries keep
    their order, take the local ``timestamp`` for matching ``sessionId`` and
    local-only entries are appended.
    """
    server = copy.deepcopy(server) if server else {}
    local = copy.deepcopy(local) if local else {}

    local_log = local.get("surgeLog")
    server_log = server.get("surgeLog")
    cleared_locally = isinstance(local_log, list) and len(local_log) == 0

    if cleared_locally:
        surge_log: List[Any] = []
    elif isinstance(local_log, list) and isinstance(server_log, list) and server_log:
        surge_log = _merge_surge_log(server_log, local_log)
    else:
        surge_log = server_log or local_log or []

    merged = {**server, **local}
    merged["surgeLog"] = surge_log
    return merged
