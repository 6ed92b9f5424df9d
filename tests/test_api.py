from conftest import add_collaborator, auth_headers
from mixnotes.models import Comment


def _comment(client, user, track, text="needs more bass", timestamp=60):
    res = client.post(
        f"/tracks/{track.id}/comments",
        json={"text": text, "timestamp": timestamp},
        headers=auth_headers(user),
    )
    assert res.status_code == 201
    return res.json()


def test_requests_need_a_bearer_token(client, track):
    assert client.get(f"/tracks/{track.id}/comments").status_code == 401


def test_register_and_login(client):
    res = client.post("/auth/register", json={
        "username": "frank", "email": "frank@example.com", "password": "secret123", "role": "producer"
    })
    assert res.status_code == 201

    res = client.post("/auth/login", json={"email": "frank@example.com", "password": "secret123"})
    assert res.status_code == 200
    token = res.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["role"] == "producer"

    bad = client.post("/auth/login", json={"email": "frank@example.com", "password": "wrong"})
    assert bad.status_code == 401


def test_private_project_comments_after_invitation(client, owner, outsider, project, track):
    res = client.get(f"/tracks/{track.id}/comments", headers=auth_headers(outsider))
    assert res.status_code == 403
    assert res.json()["code"] == "forbidden"

    res = client.post(
        f"/projects/{project.id}/collaborators",
        json={"user_id": outsider.id, "permissions": ["view", "comment"]},
        headers=auth_headers(owner),
    )
    assert res.status_code == 200
    entries = {c["user"]["id"]: c for c in res.json()["collaborators"]}
    assert entries[owner.id]["permissions"] == ["view", "comment", "edit", "admin"]
    assert entries[outsider.id]["permissions"] == ["view", "comment"]

    res = client.get(f"/tracks/{track.id}/comments", headers=auth_headers(outsider))
    assert res.status_code == 200
    assert res.json() == []


def test_reply_keeps_parent_timestamp(client, db, owner, outsider, project, track):
    add_collaborator(db, project, outsider, ["comment"])
    parent = _comment(client, owner, track)

    res = client.post(
        f"/comments/{parent['id']}/replies",
        json={"text": "agreed", "timestamp": 90},
        headers=auth_headers(outsider),
    )
    assert res.status_code == 201
    assert res.json()["timestamp"] == 60
    assert res.json()["parent_id"] == parent["id"]

    thread = client.get(f"/tracks/{track.id}/comments", headers=auth_headers(owner)).json()
    assert [r["text"] for r in thread[0]["replies"]] == ["agreed"]


def test_reaction_toggle(client, owner, track):
    comment = _comment(client, owner, track)
    url = f"/comments/{comment['id']}/reactions"

    res = client.post(url, json={"type": "like"}, headers=auth_headers(owner))
    assert res.status_code == 200
    assert len(res.json()["reactions"]) == 1
    assert res.json()["reaction_counts"]["like"] == 1

    res = client.post(url, json={"type": "like"}, headers=auth_headers(owner))
    assert len(res.json()["reactions"]) == 0

    res = client.post(url, json={}, headers=auth_headers(owner))
    assert res.status_code == 400


def test_edit_and_status_authorization(client, db, owner, outsider, make_user, project, make_track):
    uploader = make_user("erin")
    add_collaborator(db, project, uploader, ["view", "comment", "edit"])
    add_collaborator(db, project, outsider, ["view", "comment"])
    track = make_track(project, uploader)
    comment = _comment(client, owner, track)
    dave = make_user("dave")
    add_collaborator(db, project, dave, ["view", "comment"])

    res = client.put(f"/comments/{comment['id']}", json={"text": "hijack"}, headers=auth_headers(dave))
    assert res.status_code == 403

    res = client.put(f"/comments/{comment['id']}/status", json={"status": "addressed"}, headers=auth_headers(dave))
    assert res.status_code == 403

    res = client.put(f"/comments/{comment['id']}/status", json={"status": "rejected"}, headers=auth_headers(uploader))
    assert res.status_code == 200
    assert res.json()["status"] == "rejected"

    res = client.put(f"/comments/{comment['id']}/status", json={}, headers=auth_headers(owner))
    assert res.status_code == 400

    res = client.put(f"/comments/{comment['id']}", json={"text": "needs less bass"}, headers=auth_headers(owner))
    assert res.status_code == 200
    assert res.json()["text"] == "needs less bass"


def test_create_comment_validation(client, owner, track):
    res = client.post(f"/tracks/{track.id}/comments", json={"type": "technical"}, headers=auth_headers(owner))
    assert res.status_code == 400
    assert res.json()["code"] == "validation_error"

    res = client.post("/tracks/9999/comments", json={"text": "x", "timestamp": 1}, headers=auth_headers(owner))
    assert res.status_code == 404


def test_delete_cascades_to_replies(client, db, owner, track):
    parent = _comment(client, owner, track)
    for text in ("one", "two"):
        client.post(f"/comments/{parent['id']}/replies", json={"text": text}, headers=auth_headers(owner))

    res = client.delete(f"/comments/{parent['id']}", headers=auth_headers(owner))
    assert res.status_code == 200
    assert res.json() == {}

    db.expire_all()
    assert db.query(Comment).count() == 0

    res = client.delete(f"/comments/{parent['id']}", headers=auth_headers(owner))
    assert res.status_code == 404


def test_collaborator_management_errors(client, db, owner, outsider, make_user, project):
    headers = auth_headers(owner)
    url = f"/projects/{project.id}/collaborators"

    assert client.post(url, json={"user_id": owner.id}, headers=headers).status_code == 400
    assert client.post(url, json={"user_id": outsider.id}, headers=headers).status_code == 200

    res = client.post(url, json={"user_id": outsider.id}, headers=headers)
    assert res.status_code == 400
    assert res.json()["code"] == "duplicate"

    carol = make_user("carol")
    assert client.post(url, json={"user_id": carol.id}, headers=auth_headers(outsider)).status_code == 403
    assert client.post(url, json={"user_id": 9999}, headers=headers).status_code == 404

    res = client.put(f"{url}/{outsider.id}", json={"permissions": ["view", "admin"]}, headers=headers)
    assert res.status_code == 200
    assert client.post(url, json={"user_id": carol.id}, headers=auth_headers(outsider)).status_code == 200

    assert client.put(f"{url}/{owner.id}", json={"permissions": ["view"]}, headers=headers).status_code == 400
    assert client.delete(f"{url}/{owner.id}", headers=headers).status_code == 400
    assert client.delete(f"{url}/{carol.id}", headers=headers).status_code == 200
    assert client.delete(f"{url}/{carol.id}", headers=headers).status_code == 404


def test_track_versions_endpoints(client, owner, project):
    headers = auth_headers(owner)
    body = {
        "title": "Single",
        "audio_url": "https://cdn.example.com/single.wav",
        "file_id": "f1",
        "file_size": 100,
        "duration": 200,
        "format": "wav",
        "waveform_data": "wf",
    }
    first = client.post(f"/projects/{project.id}/tracks", json=body, headers=headers).json()
    second = client.post(
        f"/projects/{project.id}/tracks",
        json=dict(body, file_id="f2", previous_version_id=first["id"]),
        headers=headers,
    ).json()
    assert second["version_number"] == 2

    res = client.post(
        f"/projects/{project.id}/tracks",
        json=dict(body, file_id="f3", previous_version_id=first["id"]),
        headers=headers,
    )
    assert res.status_code == 409

    versions = client.get(f"/tracks/{second['id']}/versions", headers=headers).json()
    assert [v["id"] for v in versions] == [first["id"], second["id"]]

    latest = client.get(f"/tracks/{first['id']}/latest", headers=headers).json()
    assert latest["id"] == second["id"]

    detail = client.get(f"/tracks/{first['id']}", headers=headers).json()
    assert detail["next_version_id"] == second["id"]


def test_public_project_is_readable(client, db, outsider, project, track):
    project.is_private = False
    db.commit()

    assert client.get(f"/projects/{project.id}", headers=auth_headers(outsider)).status_code == 200
    assert client.get(f"/tracks/{track.id}/comments", headers=auth_headers(outsider)).status_code == 200
    res = client.post(
        f"/tracks/{track.id}/comments",
        json={"text": "drive-by", "timestamp": 1},
        headers=auth_headers(outsider),
    )
    assert res.status_code == 403


def test_project_lifecycle(client, owner, outsider):
    headers = auth_headers(owner)
    res = client.post("/projects", json={"title": "EP", "tags": ["lofi"]}, headers=headers)
    assert res.status_code == 201
    project_id = res.json()["id"]

    assert [p["id"] for p in client.get("/projects", headers=headers).json()] == [project_id]

    res = client.put(f"/projects/{project_id}", json={"status": "review"}, headers=headers)
    assert res.json()["status"] == "review"
    assert client.put(f"/projects/{project_id}", json={"owner_id": outsider.id}, headers=headers).status_code == 400

    assert client.delete(f"/projects/{project_id}", headers=auth_headers(outsider)).status_code == 403
    assert client.delete(f"/projects/{project_id}", headers=headers).status_code == 200
    assert client.get(f"/projects/{project_id}", headers=headers).status_code == 404


def test_missing_track_comments_is_not_found(client, owner):
    res = client.get("/tracks/9999/comments", headers=auth_headers(owner))
    assert res.status_code == 404
    assert res.json()["code"] == "not_found"


def test_edit_with_unknown_status_is_rejected(client, owner, track):
    comment = _comment(client, owner, track)

    res = client.put(f"/comments/{comment['id']}", json={"status": "done"}, headers=auth_headers(owner))
    assert res.status_code == 400
    assert res.json()["code"] == "validation_error"


def test_null_track_title_is_ignored(client, owner, track):
    res = client.put(f"/tracks/{track.id}", json={"title": None, "genre": "house"}, headers=auth_headers(owner))
    assert res.status_code == 200
    assert res.json()["title"] == "Demo"
    assert res.json()["genre"] == "house"


def test_delete_track_endpoint_relinks_versions(client, owner, project, make_track):
    first = make_track(project, owner, title="v1")
    second = make_track(project, owner, previous=first, title="v2")
    third = make_track(project, owner, previous=second, title="v3")
    ids = (first.id, second.id, third.id)
    headers = auth_headers(owner)

    res = client.delete(f"/tracks/{ids[1]}", headers=headers)
    assert res.status_code == 200
    assert res.json() == {}

    versions = client.get(f"/tracks/{ids[2]}/versions", headers=headers).json()
    assert [v["id"] for v in versions] == [ids[0], ids[2]]
    assert client.get(f"/tracks/{ids[1]}", headers=headers).status_code == 404
    assert client.delete(f"/tracks/{ids[1]}", headers=headers).status_code == 404


def test_track_waveform_endpoints(client, db, owner, outsider, project, track):
    add_collaborator(db, project, outsider, ["view"])
    url = f"/tracks/{track.id}/waveform"

    res = client.get(url, headers=auth_headers(outsider))
    assert res.status_code == 200
    assert res.json() == {"track_id": track.id, "waveform_data": "waveform-ref"}

    assert client.put(url, json={"waveform_data": "peaks-v2"}, headers=auth_headers(outsider)).status_code == 403
    assert client.put(url, json={"waveform_data": ""}, headers=auth_headers(owner)).status_code == 400

    res = client.put(url, json={"waveform_data": "peaks-v2"}, headers=auth_headers(owner))
    assert res.status_code == 200
    assert client.get(url, headers=auth_headers(owner)).json()["waveform_data"] == "peaks-v2"


def test_auth_errors_carry_codes(client):
    body = {"username": "gina", "email": "gina@example.com", "password": "secret123"}
    assert client.post("/auth/register", json=body).status_code == 201

    res = client.post("/auth/register", json=dict(body, email="gina2@example.com"))
    assert res.status_code == 400
    assert res.json()["code"] == "duplicate"

    res = client.post("/auth/login", json={"email": "gina@example.com", "password": "wrong"})
    assert res.status_code == 401
    assert res.json()["code"] == "unauthorized"

    res = client.get("/auth/me")
    assert res.status_code == 401
    assert res.json()["code"] == "unauthorized"
    assert res.headers["WWW-Authenticate"] == "Bearer"

    res = client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert res.status_code == 401
    assert res.json()["code"] == "unauthorized"
