"""
Shared pytest fixtures for liftsync MCP testing.
"""
import json
import pytest
from unittest.mock import AsyncMock, Mock, patch

# Monkey-patch: production uses fastmcp.FastMCP, tests use mcp.server.fastmcp.
# Patch fastmcp.Context to match mcp.server.fastmcp.Context so tools work
# with the test FastMCP.
import fastmcp
from mcp.server.fastmcp import server as mcp_server
fastmcp.Context = mcp_server.Context

from mcp.server.fastmcp import FastMCP

from liftsync_mcp.api.runtime import WorkoutRuntime
from liftsync_mcp.api.state import WorkoutState
from liftsync_mcp.api.storage import MemoryStore


def get_tool_result_text(result):
    """Extract text from tool result.

    FastMCP call_tool returns a tuple (list_of_TextContent, metadata_dict).
    This helper extracts the text from the first TextContent item.
    """
    # Handle tuple return: (content_list, metadata)
    if isinstance(result, tuple) and len(result) > 0:
        result = result[0]
    if isinstance(result, list) and len(result) > 0:
        if hasattr(result[0], 'text'):
            return result[0].text
    return str(result)


def sample_program():
    """Two-day program shared by Alice and Bob."""
    return {
        "days": [
            {
                "dayNumber": 1,
                "dayTitle": "Push",
                "muscleGroups": ["chest", "triceps"],
                "people": {
                    "Alice": {
                        "exercises": [
                            {"name": "Bench Press", "sets": 3, "muscleGroup": "chest"},
                            {"name": "Dips", "sets": 2, "muscleGroup": "triceps"},
                        ],
                        "totalSets": 5,
                    },
                    "Bob": {
                        "exercises": [
                            {"name": "Incline Press", "sets": 3, "muscleGroup": "chest"},
                            {"name": "bench press ", "sets": 3, "muscleGroup": "chest"},
                        ],
                        "totalSets": 6,
                    },
                },
            },
            {
                "dayNumber": 2,
                "dayTitle": "Legs",
                "muscleGroups": ["legs"],
                "people": {
                    "Alice": {
                        "exercises": [{"name": "Back Squat", "sets": 4, "muscleGroup": "legs"}],
                        "totalSets": 4,
                    },
                },
            },
        ]
    }


@pytest.fixture
def program():
    return sample_program()


@pytest.fixture
def mock_sdk_client():
    """Create a mock SDK client with common attributes stubbed."""
    client = Mock()
    client.user_id = "u1"
    client.access_token = "test_access_token"
    client.is_logged_in = True
    client.export_token = Mock(return_value=json.dumps({
        "access_token": "test_access_token",
        "user_id": "u1",
    }))
    client.load_token = Mock()

    # make_request is the core SDK method; api/ tests patch the sdk modules instead.
    client.make_request = Mock()
    return client


@pytest.fixture
def store(program):
    """In-memory store seeded with a program and a selection."""
    return MemoryStore({
        "workoutData": program,
        "selectedPerson": "Alice",
        "currentDay": 1,
    })


@pytest.fixture
def state(store):
    workout_state = WorkoutState(store, "u1")
    workout_state.load()
    return workout_state


@pytest.fixture
def runtime(mock_sdk_client, store):
    """A runtime with no transport and no background loops."""
    return WorkoutRuntime(mock_sdk_client, store, transport=None)


@pytest.fixture(autouse=True)
def mock_get_runtime(runtime):
    """Auto-mock client_factory.get_runtime in all tool modules.

    Patches get_runtime at the module level so that tool functions receive
    the test runtime instead of reading tokens from the request context.

    Yields the mock function (not the runtime) so tests can set side_effect
    for error scenarios like an expired session.
    """
    get_runtime_fn = AsyncMock(return_value=runtime)
    expired_fn = Mock(return_value=json.dumps({
        "error": "Your liftsync session has expired. Please log in again.",
        "error_code": "SESSION_EXPIRED",
    }))

    modules_to_patch = [
        "liftsync_mcp.workouts",
        "liftsync_mcp.joint",
        "liftsync_mcp.watch",
    ]

    patchers = []
    for module in modules_to_patch:
        for name, fn in (("get_runtime", get_runtime_fn), ("handle_token_expired", expired_fn)):
            p = patch(f"{module}.{name}", fn)
            p.start()
            patchers.append(p)

    yield get_runtime_fn

    for p in patchers:
        p.stop()


def create_test_app(module):
    """Helper to create a FastMCP app with a specific module registered."""
    app = FastMCP(f"Test liftsync {module.__name__}")
    app = module.register_tools(app)
    return app


@pytest.fixture
def liftsync_tokens():
    """Sample tokens for session restoration."""
    return json.dumps({"access_token": "test_access_token", "user_id": "u1"})
