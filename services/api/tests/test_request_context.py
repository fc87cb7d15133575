from uuid import uuid4

import pytest
from pydantic import ValidationError
from starlette.requests import Request

from tms_api.core.config import Settings
from tms_api.core.context import RequestContext
from tms_api.middlewares import read_actor_context


def _make_request(headers: dict[str, str]) -> Request:
    raw_headers = [(key.lower().encode("latin-1"), value.encode("latin-1")) for key, value in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/api/roles/me", "headers": raw_headers})


def test_read_actor_context_parses_gateway_headers():
    actor_id, tenant_id = uuid4(), uuid4()
    ctx = read_actor_context(
        _make_request(
            {
                "X-Actor-Id": str(actor_id),
                "X-Tenant-Id": f" {tenant_id} ",
                "X-Actor-Roles": "trainer, EMPLOYEE,,Trainer",
                "X-Actor-Global-Role": "super_admin",
            }
        )
    )
    assert ctx.actor_id == actor_id
    assert ctx.tenant_id == tenant_id
    assert ctx.roles == ("TRAINER", "EMPLOYEE")
    assert ctx.role_hints == ("TRAINER", "EMPLOYEE", "SUPER_ADMIN")


def test_read_actor_context_treats_invalid_ids_as_missing():
    ctx = read_actor_context(_make_request({"X-Actor-Id": "not-a-uuid", "X-Tenant-Id": ""}))
    assert ctx == RequestContext()
    assert ctx.role_hints == ()


def test_settings_normalize_log_level():
    assert Settings(log_level=" debug ").log_level == "DEBUG"
    with pytest.raises(ValidationError):
        Settings(log_level="verbose")
