def _event(client, headers, **fields):
    body = {"title": "Team meeting", "date": "2024-06-10", "time": "09:00", "type": "meeting", **fields}
    resp = client.post("/api/events", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_defaults_status(client, auth_headers):
    event = _event(client, auth_headers)
    assert event["status"] == "scheduled"
    assert event["id"]
    assert "createdAt" in event


def test_rejects_unknown_type(client, auth_headers):
    resp = client.post("/api/events", json={"title": "x", "date": "2024-06-10", "type": "party"}, headers=auth_headers)
    assert resp.status_code == 400


def test_list_sorted_by_date(client, auth_headers):
    _event(client, auth_headers, title="Later", date="2024-07-01")
    _event(client, auth_headers, title="Sooner", date="2024-06-01")
    titles = [e["title"] for e in client.get("/api/events", headers=auth_headers).json()]
    assert titles == ["Sooner", "Later"]


def test_update_by_path_and_by_body(client, auth_headers):
    event = _event(client, auth_headers)

    resp = client.put(f"/api/events/{event['id']}", json={"status": "completed"}, headers=auth_headers)
    assert resp.json()["status"] == "completed"

    resp = client.put("/api/events", json={"_id": event["id"], "location": "Office"}, headers=auth_headers)
    assert resp.json()["location"] == "Office"
    assert resp.json()["id"] == event["id"]

    assert client.get(f"/api/events/{event['id']}", headers=auth_headers).json()["location"] == "Office"


def test_body_update_requires_id(client, auth_headers):
    assert client.put("/api/events", json={"title": "x"}, headers=auth_headers).status_code == 400


def test_missing_event(client, auth_headers):
    assert client.get("/api/events/65f000000000000000000000", headers=auth_headers).status_code == 404
    assert client.put("/api/events/nope", json={"title": "x"}, headers=auth_headers).status_code == 404
    assert client.delete("/api/events/nope", headers=auth_headers).status_code == 404


def test_delete(client, auth_headers):
    event = _event(client, auth_headers)
    assert client.delete(f"/api/events/{event['id']}", headers=auth_headers).json() == {"success": True}
    assert client.get("/api/events", headers=auth_headers).json() == []


def test_editing_a_mirrored_event_does_not_touch_the_lead(client, auth_headers):
    lead = client.post("/api/leads", json={"name": "Jane"}, headers=auth_headers).json()
    client.post(
        f"/api/leads/{lead['id']}/showings",
        json={"id": "s1", "date": "2024-06-01", "property": "1 Main St"},
        headers=auth_headers,
    )
    event = client.get("/api/events", headers=auth_headers).json()[0]

    client.put(
        "/api/events",
        json={**event, "status": "cancelled", "location": "Elsewhere"},
        headers=auth_headers,
    )

    showing = client.get(f"/api/leads/{lead['id']}/showings", headers=auth_headers).json()[0]
    assert showing["status"] == "scheduled"
    assert showing["property"] == "1 Main St"
