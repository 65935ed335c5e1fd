"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""

import copy
import json
import os
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import AsyncGenerator, Optional
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from graphscan.core.exceptions import DuplicateIdempotencyKeyError, GraphVersionConflictError
from graphscan.db.database import get_db, init_db
from graphscan.main import app
from graphscan.services.graph_store import GraphStore


def write_file(root, relative_path: str, content: str) -> None:
    file_path = os.path.join(str(root), relative_path)
    os.makedirs(os.path.dirname(file_path), exist_ok=True)
    with open(file_path, "w", encoding="utf-8") as handle:
        handle.write(content)


def write_json(root, relative_path: str, value) -> None:
    write_file(root, relative_path, json.dumps(value, indent=2))


SCENARIO_A_FILES = {
    "apps/portal/src/app/app.component.ts": """import { Component } from '@angular/core'
import { ButtonComponent } from '@betterdoc/ui-kit/button/button.component'
import { formatName } from '@betterdoc/shared-utils'

@Component({
  selector: 'bd-root',
  standalone: true,
  imports: [ButtonComponent],
  template: '<bd-button></bd-button>',
})
export class AppComponent {
  label = formatName('portal')
}
""",
    "apps/portal/src/main.ts": """import { formatName } from '@betterdoc/shared-utils'

export const appName = formatName('portal')
""",
    "libs/ui-kit/src/button/button.component.ts": """import { Component } from '@angular/core'
import { formatName } from '@betterdoc/shared-utils/format-name'

@Component({
  selector: 'bd-button',
  template: '<button>{{label}}</button>',
})
export class ButtonComponent {
  label = formatName('button')
}
""",
    "libs/shared-utils/src/profile-card/profile-card.component.ts": """import { Component } from '@angular/core'

@Component({
  selector: 'bd-profile-card',
  template: '<div>Profile</div>',
})
export class ProfileCardComponent {}
""",
    "libs/shared-utils/src/public-api.ts": "export * from './format-name'\n",
    "libs/shared-utils/src/format-name.ts": """export function formatName(value: string): string {
  return value.toUpperCase()
}
""",
}


@pytest.fixture
def scenario_a_workspace(tmp_path):
    """portal -> ui-kit, shared-utils; ui-kit -> shared-utils"""
    root = tmp_path / "workspace"
    write_json(root, "angular.json", {
        "version": 1,
        "projects": {
            "portal": {"projectType": "application", "root": "apps/portal", "sourceRoot": "apps/portal/src"},
            "ui-kit": {"projectType": "library", "root": "libs/ui-kit", "sourceRoot": "libs/ui-kit/src"},
            "shared-utils": {
                "projectType": "library",
                "root": "libs/shared-utils",
                "sourceRoot": "libs/shared-utils/src",
            },
        },
    })
    write_json(root, "tsconfig.base.json", {
        "compilerOptions": {
            "paths": {
                "@betterdoc/ui-kit/*": ["libs/ui-kit/src/*"],
                "@betterdoc/shared-utils": ["libs/shared-utils/src/public-api.ts"],
                "@betterdoc/shared-utils/*": ["libs/shared-utils/src/*"],
            },
        },
    })
    for relative_path, content in SCENARIO_A_FILES.items():
        write_file(root, relative_path, content)
    return root


def make_snapshot(project_names=("portal",), edges=()) -> dict:
    """Small wire-form snapshot"""
    return {
        "schemaVersion": 1,
        "workspaceConfigPath": "angular.json",
        "projects": [
            {
                "name": name,
                "type": "application",
                "rootPath": f"apps/{name}",
                "sourceRootPath": f"apps/{name}/src",
                "configFilePath": "angular.json",
                "dependencies": sorted(target for source, target in edges if source == name),
            }
            for name in sorted(project_names)
        ],
        "libs": [],
        "components": [],
        "dependencies": [
            {"sourceProject": source, "targetProject": target, "viaFiles": [f"apps/{source}/src/main.ts"]}
            for source, target in sorted(edges)
        ],
    }


def make_request(
    idempotency_key: str = "ci-build-1-attempt-1",
    workspace_id: str = "team/repo",
    snapshot: Optional[dict] = None,
    **overrides,
) -> dict:
    payload = {
        "idempotencyKey": idempotency_key,
        "workspaceId": workspace_id,
        "source": "pipeline",
        "scanner": {"name": "workspace-scanner", "version": "1.0.0"},
        "metadata": {"branch": "main", "commitSha": "abc123", "runId": "42"},
        "snapshot": snapshot if snapshot is not None else make_snapshot(),
    }
    payload.update(overrides)
    return payload


class InMemoryGraphStore(GraphStore):
    """
    GraphStore over plain dicts.

    A transaction snapshots all state on entry and restores it when the
    block raises, so rolled-back writes are invisible afterwards.
    """

    def __init__(self):
        self.runs = {}
        self.versions = {}
        self.heads = {}
        self.committed_transactions = 0
        self.fail_next_version_insert: Optional[Exception] = None
        self.version_conflicts_left = 0
        self.version_insert_attempts = 0

    @asynccontextmanager
    async def transaction(self):
        saved = copy.deepcopy((self.runs, self.versions, self.heads))
        try:
            yield
        except Exception:
            self.runs, self.versions, self.heads = saved
            raise
        self.committed_transactions += 1

    async def get_run(self, scan_run_id, for_update=False):
        return self.runs.get(scan_run_id)

    async def get_run_by_key(self, idempotency_key, for_update=False):
        return next((run for run in self.runs.values() if run.idempotency_key == idempotency_key), None)

    async def insert_run(self, fields):
        if any(run.idempotency_key == fields["idempotency_key"] for run in self.runs.values()):
            raise DuplicateIdempotencyKeyError(fields["idempotency_key"])

        run = SimpleNamespace(
            id=uuid4(),
            graph_version_id=None,
            graph_version_number=None,
            error_code=None,
            error_message=None,
            **fields,
        )
        self.runs[run.id] = run
        return run

    async def patch_run(self, scan_run_id, fields):
        run = self.runs[scan_run_id]
        for key, value in fields.items():
            setattr(run, key, value)
        return run

    async def get_latest_succeeded_run(self, workspace_id):
        candidates = [
            run for run in self.runs.values()
            if run.workspace_id == workspace_id and run.status == "succeeded"
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda run: (run.started_at, run.graph_version_number or 0))

    async def get_head(self, workspace_id, for_update=False):
        return self.heads.get(workspace_id)

    async def upsert_head(self, workspace_id, latest_version):
        head = self.heads.setdefault(workspace_id, SimpleNamespace(workspace_id=workspace_id, latest_version=0))
        head.latest_version = latest_version
        return head

    async def insert_version(self, fields, snapshot):
        self.version_insert_attempts += 1
        if self.version_conflicts_left:
            self.version_conflicts_left -= 1
            raise GraphVersionConflictError(fields["workspace_id"], fields["version"])

        if self.fail_next_version_insert is not None:
            error, self.fail_next_version_insert = self.fail_next_version_insert, None
            raise error

        if any(
            version.workspace_id == fields["workspace_id"] and version.version == fields["version"]
            for version in self.versions.values()
        ):
            raise GraphVersionConflictError(fields["workspace_id"], fields["version"])

        version = SimpleNamespace(id=uuid4(), snapshot=snapshot.to_wire(), **fields)
        self.versions[version.id] = version
        return version

    async def list_versions(self, workspace_id):
        return sorted(version.version for version in self.versions.values() if version.workspace_id == workspace_id)


class StaleReadGraphStore(InMemoryGraphStore):
    """First keyed lookup misses a row another writer already committed"""

    def __init__(self):
        super().__init__()
        self.stale_reads_left = 1

    async def get_run_by_key(self, idempotency_key, for_update=False):
        if self.stale_reads_left:
            self.stale_reads_left -= 1
            return None
        return await super().get_run_by_key(idempotency_key, for_update)


@pytest.fixture
def memory_store() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest.fixture
def stale_read_store() -> StaleReadGraphStore:
    return StaleReadGraphStore()


@pytest.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'graphscan-test.db'}",
        poolclass=NullPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """API client with a session per request against the test database"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
