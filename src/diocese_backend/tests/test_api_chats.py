import pytest

from diocese_backend.model.chat import Chat

CHAT_ID = "3f1c2b9e-8a4d-4c6e-9b1a-2d3e4f5a6b7c"
FOREIGN_CHAT_ID = "9a8b7c6d-5e4f-4a3b-8c2d-1e0f9a8b7c6d"


@pytest.fixture
def chat_db(seeded_db):
    seeded_db.add_all([
        Chat(id=CHAT_ID, user_id=3, name="Student counts", messages=[{"role": "user", "content": "How many students?"}]),
        Chat(id=FOREIGN_CHAT_ID, user_id=2, name="Diocese report", messages=[]),
    ])
    seeded_db.commit()
    return seeded_db


@pytest.fixture
def client(test_client_factory, chat_db, school_identity):
    return test_client_factory(school_identity, chat_db)


def test_list_own_chats(client):
    response = client.get("/chats")

    assert response.status_code == 200
    assert [c["id"] for c in response.json()] == [CHAT_ID]


def test_get_chat(client):
    body = client.get(f"/chats/{CHAT_ID}").json()

    assert body["name"] == "Student counts"
    assert body["messages"] == [{"role": "user", "content": "How many students?"}]


def test_foreign_chat_is_unauthorized(client):
    assert client.get(f"/chats/{FOREIGN_CHAT_ID}").status_code == 401
    assert client.delete(f"/chats/{FOREIGN_CHAT_ID}").status_code == 401


def test_missing_chat(client):
    assert client.get("/chats/00000000-0000-4000-8000-000000000000").status_code == 404


def test_chat_id_must_be_uuid(client):
    assert client.get("/chats/not-a-uuid").status_code == 422


def test_save_creates_chat(client, chat_db):
    new_id = "5b6c7d8e-9f0a-4b1c-8d2e-3f4a5b6c7d8e"
    messages = [
        {"role": "user", "content": "List testing centers"},
        {"role": "assistant", "content": "Here they are", "query": {"sql": "SELECT 1"}},
    ]

    response = client.put(f"/chats/{new_id}", json={"name": "Centers", "messages": messages})

    assert response.status_code == 200
    stored = chat_db.query(Chat).filter(Chat.id == new_id).first()
    assert stored.user_id == 3
    assert stored.messages == messages


def test_save_replaces_messages(client):
    messages = [{"role": "user", "content": "Replaced"}]

    body = client.put(f"/chats/{CHAT_ID}", json={"messages": messages}).json()

    assert body["messages"] == messages
    assert body["name"] == "Student counts"


def test_save_cannot_take_over_foreign_chat(client):
    response = client.put(f"/chats/{FOREIGN_CHAT_ID}", json={"messages": []})
    assert response.status_code == 401


def test_rename(client):
    response = client.patch(f"/chats/{CHAT_ID}", json={"name": "Enrollment"})

    assert response.status_code == 200
    assert response.json()["name"] == "Enrollment"


@pytest.mark.parametrize("name", ["", "x" * 101])
def test_rename_validates_length(client, name):
    assert client.patch(f"/chats/{CHAT_ID}", json={"name": name}).status_code == 422


def test_delete(client):
    assert client.delete(f"/chats/{CHAT_ID}").status_code == 204
    assert client.get(f"/chats/{CHAT_ID}").status_code == 404


def test_anonymous_cannot_list(test_client_factory, chat_db):
    assert test_client_factory(None, chat_db).get("/chats").status_code == 401
