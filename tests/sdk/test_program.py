"""Tests for SDK saved program functions."""

import pytest
from unittest.mock import patch

from liftsync_mcp.sdk.client import LiftSyncClient
from liftsync_mcp.sdk import program


@pytest.fixture
def authed_client():
    return LiftSyncClient(token="token", user_id="u1")


class TestFetchSavedProgram:
    def test_returns_program(self, authed_client):
        with patch.object(authed_client, "make_request") as mock_req:
            mock_req.return_value = {"program": {"days": [{"dayNumber": 1}]}}
            assert program.fetch_saved_program(authed_client)["days"][0]["dayNumber"] == 1

    def test_not_found_is_none(self, authed_client):
        with patch.object(authed_client, "make_request") as mock_req:
            mock_req.return_value = None
            assert program.fetch_saved_program(authed_client) is None


class TestProgramPatches:
    def test_rename_omits_muscle_group_when_unset(self, authed_client):
        with patch.object(authed_client, "make_request") as mock_req:
            mock_req.return_value = {}
            program.rename_exercise(authed_client, 1, "Alice", 0, "Paused Bench")
            body = mock_req.call_args.kwargs["json_data"]
            assert body["newName"] == "Paused Bench"
            assert "newMuscleGroup" not in body

    def test_add_exercise(self, authed_client):
        with patch.object(authed_client, "make_request") as mock_req:
            mock_req.return_value = {}
            program.add_exercise(authed_client, 1, "Alice", {"name": "Flyes", "sets": 2})
            assert mock_req.call_args[0][:2] == ("PATCH", "api/program/exercise/add")

    def test_patch_sets(self, authed_client):
        with patch.object(authed_client, "make_request") as mock_req:
            mock_req.return_value = {}
            program.patch_exercise_sets(authed_client, 1, "Alice", 1, 2)
            assert mock_req.call_args.kwargs["json_data"]["additionalSets"] == 2
