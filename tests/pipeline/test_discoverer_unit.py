"""Unit tests for UpdateDiscoverer."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from steward.buildtool.sbt import BuildToolError
from steward.errors import DiscoveryError
from steward.models import Branch, LocalRepo, Repo
from steward.updates.discoverer import UpdateDiscoverer
from steward.updates.ignore import IgnoreRule
from tests.pipeline.fakes import make_update, run_async

LOCAL_REPO = LocalRepo(
    repo=Repo(owner="foo", name="bar"),
    working_directory=Path("/tmp/ws/foo/bar-1"),
    base_branch=Branch(name="master"),
)


def test_discover_returns_build_tool_updates():
    updates = [make_update(artifact_id="y"), make_update(artifact_id="z")]
    build_tool = AsyncMock()
    build_tool.list_outdated_dependencies.return_value = updates

    assert run_async(UpdateDiscoverer(build_tool).discover(LOCAL_REPO)) == updates
    build_tool.list_outdated_dependencies.assert_awaited_once_with(LOCAL_REPO.working_directory)


def test_build_tool_failure_raises_discovery_error():
    build_tool = AsyncMock()
    build_tool.list_outdated_dependencies.side_effect = BuildToolError("sbt exited with code 1")

    with pytest.raises(DiscoveryError) as exc_info:
        run_async(UpdateDiscoverer(build_tool).discover(LOCAL_REPO))
    assert exc_info.value.stage == "discovery"
    assert isinstance(exc_info.value.__cause__, BuildToolError)


def test_filter_applies_configured_rules():
    discoverer = UpdateDiscoverer(AsyncMock(), [IgnoreRule.parse("com.x:z")])
    kept = make_update(artifact_id="y")
    assert discoverer.filter([kept, make_update(artifact_id="z")]) == [kept]
