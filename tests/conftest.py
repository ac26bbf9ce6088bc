"""Shared fixtures: in-memory database, stores and workflow factories."""

from __future__ import annotations

import json
from typing import Any

import pytest

from area_engine.automation import (
    ActionExecutorRegistry,
    PollingOrchestrator,
    ReactionExecutorRegistry,
    TriggerStateService,
)
from area_engine.core import PollingLoopConfig
from area_engine.storage import (
    ConnectionRepository,
    DatabaseManager,
    ExecutionLogRepository,
    ServiceConnection,
    TriggerStateRepository,
    Workflow,
    WorkflowRepository,
)


# Configure anyio to only use asyncio backend (skip trio tests)
@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to use only asyncio backend."""
    return "asyncio"


@pytest.fixture
def db():
    """Fresh in-memory database with all tables."""
    manager = DatabaseManager("sqlite:///:memory:")
    manager.create_tables()
    yield manager
    manager.dispose()


@pytest.fixture
def workflows(db):
    return WorkflowRepository(db)


@pytest.fixture
def connections(db):
    return ConnectionRepository(db)


@pytest.fixture
def state_repo(db):
    return TriggerStateRepository(db)


@pytest.fixture
def state_service(state_repo):
    return TriggerStateService(state_repo)


@pytest.fixture
def execution_log(db):
    return ExecutionLogRepository(db)


@pytest.fixture
def make_connection(connections):
    """Factory persisting a service connection."""

    def _make(
        service_type: str,
        access_token: str | None = "token",
        metadata: dict[str, Any] | None = None,
    ) -> ServiceConnection:
        return connections.add(
            ServiceConnection(
                service_type=service_type,
                access_token=access_token,
                metadata_json=json.dumps(metadata) if metadata is not None else None,
            )
        )

    return _make


@pytest.fixture
def make_workflow(workflows):
    """Factory persisting a workflow from a trigger dict and reaction dicts."""

    def _make(
        trigger: dict[str, Any] | None,
        actions: list[dict[str, Any]] | None = None,
        *,
        name: str = "workflow",
        active: bool = True,
        raw: str | None = None,
        trigger_connection_id: int | None = None,
        reaction_connection_id: int | None = None,
    ) -> Workflow:
        if raw is None:
            raw = json.dumps({"trigger": trigger, "actions": actions or []})
        return workflows.add(
            Workflow(
                name=name,
                owner_id=1,
                active=active,
                workflow_data=raw,
                trigger_connection_id=trigger_connection_id,
                reaction_connection_id=reaction_connection_id,
            )
        )

    return _make


@pytest.fixture
def build_orchestrator(workflows, connections, state_service, execution_log):
    """Factory wiring a PollingOrchestrator over the in-memory stores."""

    def _build(
        action_executors: list,
        reaction_executors: list | None = None,
        config: PollingLoopConfig | None = None,
        workflow_filter=None,
    ) -> PollingOrchestrator:
        return PollingOrchestrator(
            workflows=workflows,
            connections=connections,
            state_service=state_service,
            action_registry=ActionExecutorRegistry(action_executors),
            reaction_registry=ReactionExecutorRegistry(reaction_executors or []),
            execution_log=execution_log,
            config=config or PollingLoopConfig(),
            workflow_filter=workflow_filter,
        )

    return _build
