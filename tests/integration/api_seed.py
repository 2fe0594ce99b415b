from __future__ import annotations

from fastapi.testclient import TestClient

from achievements.api.http_app import build_app
from achievements.roles import validate_role
from achievements.services.bootstrap import RuntimeContainer, build_runtime_container
from achievements.settings import ListSettings, StoreSettings
from achievements.workers.runner import ReconcileRuntimeSettings
from tests.unit.service_seed import seeded_directory


def memory_container(role_name: str = "api", *, grace_seconds: int = 300) -> RuntimeContainer:
    return build_runtime_container(
        validate_role(role_name),
        store_settings=StoreSettings(),
        list_settings=ListSettings(),
        reconcile_settings=ReconcileRuntimeSettings(grace_seconds=grace_seconds),
        directory=seeded_directory(),
    )


def api_client(container: RuntimeContainer, role_name: str = "api") -> TestClient:
    app = build_app(
        role=role_name,
        run_id="integration-api",
        mode=container.mode,
        reconcile_loop=container.reconcile_loop,
        api_deps=container.api_deps,
    )
    return TestClient(app)


def as_actor(actor_id: str) -> dict[str, str]:
    return {"X-Actor-Id": actor_id}


def create_achievement(*, client: TestClient, actor_id: str, **payload: object) -> str:
    body: dict[str, object] = {"category": "competition", "title": "X"}
    body.update(payload)
    response = client.post("/achievements", json=body, headers=as_actor(actor_id))
    assert response.status_code == 201, response.text
    return response.json()["achievement_id"]
