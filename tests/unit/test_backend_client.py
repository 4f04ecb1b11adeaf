# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.
"""Unit tests for BackendClient / ScopedTable against the in-memory backend."""

import httpx
import pytest

from schema_gate.core.errors import BackendError, NetworkError, NotFoundError
from schema_gate.core.metrics import gate_metrics
from schema_gate.protocols.schema import Credentials
from schema_gate.runtime.backend import BackendClient, rows_of

from conftest import FAKE_ANON_KEY, FAKE_URL


class TestRequestHeaders:
    @pytest.mark.asyncio
    async def test_anon_key_used_when_signed_out(self, memory_backend, fake_supabase):
        await memory_backend.table("profiles", schema="s22").select()
        sent = fake_supabase.requests[-1]
        assert sent.headers["apikey"] == FAKE_ANON_KEY
        assert sent.headers["Authorization"] == f"Bearer {FAKE_ANON_KEY}"
        assert sent.headers["Accept-Profile"] == "s22"

    @pytest.mark.asyncio
    async def test_user_token_used_when_signed_in(self, memory_backend, fake_supabase):
        fake_supabase.users["a@b.co"] = {"id": "u1", "email": "a@b.co", "password": "Secret123"}
        session, error = await memory_backend.auth.sign_in_with_password(
            Credentials(email="a@b.co", password="Secret123")
        )
        assert error is None

        await memory_backend.table("profiles", schema="big7").select()
        sent = fake_supabase.requests[-1]
        assert sent.headers["Authorization"] == f"Bearer {session.access_token}"

    @pytest.mark.asyncio
    async def test_writes_carry_content_profile(self, memory_backend, fake_supabase):
        table = memory_backend.table("profiles", schema="big7")
        await table.insert([{"user_name": "A", "email": "a@b.co"}])
        sent = fake_supabase.calls("POST", "/rest/v1/profiles")[-1]
        assert sent.headers["Content-Profile"] == "big7"
        assert sent.headers["Prefer"] == "return=representation"

    def test_url_trailing_slash_stripped(self):
        client = BackendClient(FAKE_URL + "/", FAKE_ANON_KEY)
        assert client.url == FAKE_URL
        assert client.public_url("profile-images", "profile_1.jpg") == (
            f"{FAKE_URL}/storage/v1/object/public/profile-images/profile_1.jpg"
        )


class TestScopedTable:
    @pytest.mark.asyncio
    async def test_select_filters_order_limit(self, memory_backend, fake_supabase):
        fake_supabase.seed("s22", user_name="Old", email="old@x.co", created_at="2024-01-01T00:00:00+00:00")
        fake_supabase.seed("s22", user_name="New", email="new@x.co", created_at="2025-01-01T00:00:00+00:00")
        table = memory_backend.table("profiles", schema="s22")

        rows, error = await table.select(order="created_at.desc", limit=1)
        assert error is None
        assert [r["user_name"] for r in rows] == ["New"]

        rows, _ = await table.select(filters={"email": "old@x.co"})
        assert len(rows) == 1
        sent = fake_supabase.requests[-1]
        assert sent.url.params["email"] == "eq.old@x.co"

    @pytest.mark.asyncio
    async def test_unknown_schema_is_not_found(self, memory_backend):
        _, error = await memory_backend.table("profiles", schema="public").select()
        assert isinstance(error, NotFoundError)
        assert error.code == "PGRST106"

    @pytest.mark.asyncio
    async def test_unfiltered_update_refused(self, memory_backend):
        with pytest.raises(ValueError):
            await memory_backend.table("profiles", schema="s22").update({"role": "Admin"}, {})

    @pytest.mark.asyncio
    async def test_unfiltered_delete_refused(self, memory_backend, fake_supabase):
        with pytest.raises(ValueError):
            await memory_backend.table("profiles", schema="s22").delete({})
        assert fake_supabase.calls("DELETE") == []


class TestRpcAndTransport:
    @pytest.mark.asyncio
    async def test_rpc_posts_params(self, memory_backend, fake_supabase):
        fake_supabase.functions["validate_schema"] = lambda body: {"isValid": body["schema_name"] == "s22"}
        data, error = await memory_backend.rpc("validate_schema", {"schema_name": "s22"})
        assert error is None
        assert data == {"isValid": True}
        assert fake_supabase.calls("POST", "/rest/v1/rpc/validate_schema")

    @pytest.mark.asyncio
    async def test_missing_function_error_code(self, memory_backend):
        _, error = await memory_backend.rpc("validate_schema", {"schema_name": "s22"})
        assert error.code == "PGRST202"

    @pytest.mark.asyncio
    async def test_offline_is_network_error(self, memory_backend, fake_supabase):
        fake_supabase.offline = True
        data, error = await memory_backend.table("profiles", schema="s22").select()
        assert data is None
        assert isinstance(error, NetworkError)
        assert gate_metrics.get_counter("backend_error:NETWORK_ERROR") == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc_type", [httpx.DecodingError, httpx.TooManyRedirects])
    async def test_request_errors_returned_not_raised(self, exc_type):
        def handler(request):
            raise exc_type("malformed reply", request=request)

        async with BackendClient(FAKE_URL, FAKE_ANON_KEY, transport=httpx.MockTransport(handler)) as client:
            data, error = await client.table("profiles", schema="s22").select()
        assert data is None
        assert isinstance(error, BackendError)
        assert error.code == "REQUEST_ERROR"
        assert error.details == {"exception": exc_type.__name__}
        assert gate_metrics.get_counter("backend_error:REQUEST_ERROR") == 1

    @pytest.mark.asyncio
    async def test_metrics_recorded_per_operation(self, memory_backend):
        await memory_backend.table("profiles", schema="s22").select()
        assert gate_metrics.get_counter("backend_request:select:profiles") == 1
        assert gate_metrics.snapshot()["latency"]["backend_latency:select:profiles"]["count"] == 1

    @pytest.mark.asyncio
    async def test_health_check(self, memory_backend, fake_supabase):
        assert await memory_backend.health_check() is True
        fake_supabase.offline = True
        assert await memory_backend.health_check() is False

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self, fake_supabase):
        async with BackendClient(FAKE_URL, FAKE_ANON_KEY, transport=fake_supabase.transport()) as client:
            assert await client.health_check()
        with pytest.raises(RuntimeError):
            await client._client.get("/auth/v1/health")


class TestRowsOf:
    def test_shapes(self):
        assert rows_of(None) == []
        assert rows_of({"id": 1}) == [{"id": 1}]
        assert rows_of([{"id": 1}, {"id": 2}]) == [{"id": 1}, {"id": 2}]


def test_error_response_without_json_body():
    from schema_gate.runtime.backend import error_from_response

    error = error_from_response(httpx.Response(502, text="bad gateway"))
    assert error.status_code == 502
    assert error.message == "bad gateway"
