import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from gateway.catalog import ModelCatalog
from gateway.models import APIKey, DisabledModel, UsageRecord
from gateway.provider.kinds import ProviderKind
from gateway.routes import create_app
from tests.utils import auth_headers, chat_body, install_inmemory_db, seed_account

CATALOG = ModelCatalog.from_entries(
    [
        {"id": "alpha", "providers": ["iflow"], "aliases": ["alpha-latest"]},
        {"id": "beta", "providers": ["iflow"], "aliases": ["beta-latest"]},
        {"id": "gamma", "providers": ["kiro"]},
    ]
)

MESSAGES = [{"role": "user", "content": "hello"}]


@pytest.fixture()
def proxy_env():
    app = create_app()
    SessionLocal = install_inmemory_db(app, catalog=CATALOG)
    client = TestClient(app)
    yield client, app, SessionLocal
    app.dependency_overrides.clear()


def _usage(SessionLocal) -> list[UsageRecord]:
    with SessionLocal() as session:
        return list(session.execute(select(UsageRecord)).scalars().all())


def test_models_lists_catalog_with_aliases(proxy_env):
    client, _, _ = proxy_env

    resp = client.get("/v1/models", headers=auth_headers())

    assert resp.status_code == 200
    body = resp.json()
    assert body["object"] == "list"
    ids = [item["id"] for item in body["data"]]
    assert ids == ["alpha", "alpha-latest", "beta", "beta-latest", "gamma"]
    assert body["data"][0]["owned_by"] == "iflow"


def test_models_apply_key_filter_and_disabled_models(proxy_env):
    client, app, SessionLocal = proxy_env
    with SessionLocal() as session:
        api_key = session.get(APIKey, app.state._test_api_key_id)
        api_key.model_access_mode = "whitelist"
        api_key.model_access_list = ["alpha", "beta"]
        session.add(DisabledModel(user_id=app.state._test_user_id, model="beta-latest"))
        session.commit()

    resp = client.get("/v1/models", headers=auth_headers())

    assert resp.status_code == 200
    assert [item["id"] for item in resp.json()["data"]] == ["alpha", "alpha-latest"]


def test_models_requires_credentials(proxy_env):
    client, _, _ = proxy_env

    resp = client.get("/v1/models")

    assert resp.status_code == 401
    assert resp.json()["error"]["type"] == "authentication_error"


def test_unknown_api_key_never_reaches_upstream(proxy_env):
    client, app, SessionLocal = proxy_env
    with SessionLocal() as session:
        seed_account(session, user_id=app.state._test_user_id, provider=ProviderKind.IFLOW)

    resp = client.post(
        "/v1/chat/completions",
        headers=auth_headers("sk-unknown"),
        json={"model": "alpha", "messages": MESSAGES},
    )

    assert resp.status_code == 401
    assert resp.json() == {
        "error": {"message": "Invalid API key", "type": "authentication_error"}
    }
    assert app.state._test_transports[ProviderKind.IFLOW].calls == []
    assert _usage(SessionLocal) == []


def test_chat_completion_success_records_usage(proxy_env):
    client, app, SessionLocal = proxy_env
    with SessionLocal() as session:
        account = seed_account(session, user_id=app.state._test_user_id, provider=ProviderKind.IFLOW)
    app.state._test_transports[ProviderKind.IFLOW].queue(chat_body(content="pong", usage=(4, 2)))

    resp = client.post(
        "/v1/chat/completions",
        headers={"X-API-Key": "sk-timeline"},
        json={"model": "alpha-latest", "messages": MESSAGES, "temperature": 0.2},
    )

    assert resp.status_code == 200
    assert resp.json()["choices"][0]["message"]["content"] == "pong"
    _, request = app.state._test_transports[ProviderKind.IFLOW].calls[0]
    assert request.upstream_payload()["model"] == "alpha"
    assert request.upstream_payload()["temperature"] == 0.2

    records = _usage(SessionLocal)
    assert len(records) == 1
    assert records[0].model == "alpha"
    assert records[0].api_key_id == app.state._test_api_key_id
    assert records[0].provider_account_id == account.id
    assert (records[0].input_tokens, records[0].output_tokens) == (4, 2)


def test_chat_completion_exhausted_returns_sanitized_error(proxy_env):
    client, app, SessionLocal = proxy_env
    with SessionLocal() as session:
        for _ in range(2):
            seed_account(session, user_id=app.state._test_user_id, provider=ProviderKind.IFLOW)
    app.state._test_transports[ProviderKind.IFLOW].queue(429, 429)

    resp = client.post(
        "/v1/chat/completions",
        headers=auth_headers(),
        json={"model": "alpha", "messages": MESSAGES},
    )

    assert resp.status_code == 429
    error = resp.json()["error"]
    assert error["type"] == "rate_limit_error"
    assert error["message"].endswith("(2 accounts attempted)")
    assert "scripted" not in error["message"]
    assert [r.status_code for r in _usage(SessionLocal)] == [429]


def test_chat_completion_stream(proxy_env):
    client, app, SessionLocal = proxy_env
    with SessionLocal() as session:
        seed_account(session, user_id=app.state._test_user_id, provider=ProviderKind.IFLOW)
    chunks = [
        b'data: {"choices":[{"delta":{"content":"po"}}]}\n\n',
        b'data: {"choices":[],"usage":{"prompt_tokens":6,"completion_tokens":1}}\n\n',
        b"data: [DONE]\n\n",
    ]
    app.state._test_transports[ProviderKind.IFLOW].queue(chunks)

    resp = client.post(
        "/v1/chat/completions",
        headers=auth_headers(),
        json={"model": "alpha", "messages": MESSAGES, "stream": True},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.content == b"".join(chunks)
    records = _usage(SessionLocal)
    assert len(records) == 1
    assert (records[0].input_tokens, records[0].output_tokens) == (6, 1)


@pytest.mark.parametrize(
    ("kwargs", "fragment"),
    [
        ({"content": b"{not json"}, "valid JSON"),
        ({"json": ["alpha"]}, "JSON object"),
        ({"json": {"model": "alpha", "messages": []}}, "`messages`"),
        ({"json": {"model": "nope", "messages": MESSAGES}}, "`nope` does not exist"),
    ],
)
def test_chat_completion_invalid_requests(proxy_env, kwargs, fragment):
    client, app, SessionLocal = proxy_env

    resp = client.post("/v1/chat/completions", headers=auth_headers(), **kwargs)

    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "invalid_request_error"
    assert fragment in resp.json()["error"]["message"]
    assert _usage(SessionLocal) == []


def test_no_account_for_model_is_service_unavailable(proxy_env):
    client, _, SessionLocal = proxy_env

    resp = client.post(
        "/v1/chat/completions",
        headers=auth_headers(),
        json={"model": "gamma", "messages": MESSAGES},
    )

    assert resp.status_code == 503
    assert resp.json()["error"]["type"] == "api_error"
    assert _usage(SessionLocal) == []


@pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE", "PATCH"])
def test_unknown_endpoint_for_every_method(proxy_env, method):
    client, _, _ = proxy_env

    resp = client.request(method, "/v1/embeddings", headers=auth_headers())

    assert resp.status_code == 404
    assert resp.json() == {
        "error": {"message": "Unknown API endpoint", "type": "invalid_request_error"}
    }


def test_wrong_method_on_known_route_is_unknown_endpoint(proxy_env):
    client, _, _ = proxy_env

    resp = client.get("/v1/chat/completions", headers=auth_headers())

    assert resp.status_code == 404
    assert resp.json()["error"]["message"] == "Unknown API endpoint"


def test_bare_v1_root(proxy_env):
    client, _, _ = proxy_env

    assert client.get("/v1").status_code == 200
    resp = client.post("/v1", json={})
    assert resp.status_code == 404
    assert "specific endpoint" in resp.json()["error"]["message"]
