from __future__ import annotations


def _receive_until(ws, predicate, limit: int = 10) -> list[dict]:
    seen: list[dict] = []
    for _ in range(limit):
        msg = ws.receive_json()
        seen.append(msg)
        if predicate(msg):
            return seen
    raise AssertionError(f"no matching message in {seen}")


def test_ws_player_updates_and_navigation(client_and_redis) -> None:
    client, _ = client_and_redis
    client.put("/modules/one", json={"steps": [{"type": "primer", "config": {"title": "Only step"}}]})
    sid = client.post("/players", json={"user_id": "u1", "module_id": "one"}).json()["session_id"]

    with client.websocket_connect(f"/ws/player/{sid}") as ws:
        res = client.post(f"/players/{sid}/events", json={"type": "click", "target": "primer-continue"})
        assert res.status_code == 200

        seen = _receive_until(ws, lambda m: m["type"] == "navigate")
        assert seen[-1] == {"type": "navigate", "session_id": sid, "screen": "coursePlayerScreen"}

        seen += _receive_until(ws, lambda m: m["type"] == "player_updated" and m["state"] == "complete")
        assert all(m["session_id"] == sid for m in seen)
