"""
Tests for the schema introspection endpoints.
"""

import pytest

from diocese_backend.api.queries import get_query_engine
from diocese_backend.server import app


@pytest.fixture
def schema_client(test_client_factory, seeded_db):

    def _create(identity):
        client = test_client_factory(identity, seeded_db)
        app.dependency_overrides[get_query_engine] = lambda: seeded_db.get_bind()
        return client

    return _create


def test_tables(schema_client, school_identity):
    response = schema_client(school_identity).get("/schema/tables")

    assert response.status_code == 200
    assert {"dioceses", "testing_centers", "users"} <= {t["table_name"] for t in response.json()}


def test_foreign_keys(schema_client, diocese_identity):
    keys = schema_client(diocese_identity).get("/schema/foreign-keys").json()
    assert any(k["table_name"] == "testing_centers" and k["foreign_table_name"] == "dioceses" for k in keys)


def test_indexes(schema_client, diocese_identity):
    indexes = schema_client(diocese_identity).get("/schema/indexes").json()
    assert "ix_users_uuid" in [i["index_name"] for i in indexes]


@pytest.mark.parametrize("path", ["/schema/table-stats", "/schema/index-usage"])
def test_statistics_are_for_super_admins(schema_client, admin_identity, diocese_identity, school_identity, path):
    assert schema_client(admin_identity).get(path).status_code == 200
    assert schema_client(diocese_identity).get(path).status_code == 403
    assert schema_client(school_identity).get(path).status_code == 403


def test_table_stats(schema_client, admin_identity):
    stats = schema_client(admin_identity).get("/schema/table-stats").json()
    assert {"table_name": "users", "row_count": 6} in stats


def test_explain_applies_constraints(schema_client, school_identity):
    body = schema_client(school_identity).post("/schema/explain", json={"sql": "SELECT id FROM users"}).json()

    assert body["sql"] == "SELECT id FROM users WHERE diocese_id = 5 AND testing_center_id = 51"
    assert body["plan"]


@pytest.mark.parametrize("sql", ["DELETE FROM users", "SELECT missing_column FROM users"])
def test_explain_rejects_bad_statements(schema_client, admin_identity, sql):
    assert schema_client(admin_identity).post("/schema/explain", json={"sql": sql}).status_code == 400


def test_validate(schema_client, school_identity):
    body = schema_client(school_identity).post(
        "/schema/validate", json={"sql": "SELECT first_name, COUNT(*) FROM users GROUP BY first_name"}
    ).json()

    assert body == {
        "valid": False,
        "errors": ["Using name instead of ID in GROUP BY operation: first_name"],
        "warnings": [],
    }


def test_requires_authentication(schema_client):
    assert schema_client(None).get("/schema/tables").status_code == 401
