"""Tests for RemoteCommitExecutor."""

import json
from unittest.mock import MagicMock

import pytest

from docsync.config.settings import SyncSettings
from docsync.sync.committer import RemoteCommitExecutor, commit_message
from docsync.sync.exceptions import AuthError, ConflictError
from docsync.sync.models import SaveType


@pytest.fixture
def github():
    client = MagicMock()
    client.get_ref.return_value = {"object": {"sha": "tip"}}
    client.get_commit.return_value = {"tree": {"sha": "base-tree"}}
    client.create_blob.side_effect = [{"sha": "md"}, {"sha": "css"}, {"sha": "json"}]
    client.create_tree.return_value = {"sha": "new-tree"}
    client.create_commit.return_value = {"sha": "new-commit"}
    client.update_ref.return_value = {"object": {"sha": "new-commit"}}
    return client


@pytest.fixture
def executor(github, settings):
    return RemoteCommitExecutor(client_factory=lambda token: github, settings=settings)


@pytest.mark.asyncio
async def test_commit_once_writes_three_files(executor, github, snapshot_a):
    sha = await executor.commit_once("octo", "docs", "tok", "42", snapshot_a, SaveType.MANUAL)

    assert sha == "new-commit"
    github.get_ref.assert_called_once_with("octo", "docs", "heads/main")
    github.get_commit.assert_called_once_with("octo", "docs", "tip")

    blob_contents = [c.args[2] for c in github.create_blob.call_args_list]
    assert blob_contents[0] == snapshot_a.markdown
    assert blob_contents[1] == snapshot_a.css
    assert json.loads(blob_contents[2]) == snapshot_a.styles

    base_tree, entries = github.create_tree.call_args.args[2:]
    assert base_tree == "base-tree"
    assert [e["path"] for e in entries] == ["42/Resume.md", "42/Resume.css", "42/Resume.json"]
    assert [e["sha"] for e in entries] == ["md", "css", "json"]
    assert all(e["mode"] == "100644" and e["type"] == "blob" for e in entries)


@pytest.mark.asyncio
async def test_commit_parent_and_ref_update(executor, github, snapshot_a):
    await executor.commit_once("octo", "docs", "tok", "42", snapshot_a, SaveType.AUTO)

    message, tree, parents = github.create_commit.call_args.args[2:]
    assert message == "Update document: Resume (auto) 1700000000000"
    assert message == commit_message(snapshot_a, SaveType.AUTO)
    assert tree == "new-tree"
    assert parents == ["tip"]
    github.update_ref.assert_called_once_with("octo", "docs", "heads/main", "new-commit", "tip")


@pytest.mark.asyncio
async def test_configured_branch(github, snapshot_a):
    executor = RemoteCommitExecutor(
        client_factory=lambda token: github,
        settings=SyncSettings(branch="drafts"),
    )

    await executor.commit_once("octo", "docs", "tok", "42", snapshot_a, SaveType.MANUAL)

    github.get_ref.assert_called_once_with("octo", "docs", "heads/drafts")


@pytest.mark.asyncio
async def test_conflict_on_ref_update_propagates(executor, github, snapshot_a):
    github.update_ref.side_effect = ConflictError("moved", status=409)

    with pytest.raises(ConflictError):
        await executor.commit_once("octo", "docs", "tok", "42", snapshot_a, SaveType.MANUAL)


@pytest.mark.asyncio
async def test_auth_failure_stops_before_writing(executor, github, snapshot_a):
    github.get_ref.side_effect = AuthError("bad credentials", status=401)

    with pytest.raises(AuthError):
        await executor.commit_once("octo", "docs", "tok", "42", snapshot_a, SaveType.MANUAL)

    github.create_blob.assert_not_called()
    github.update_ref.assert_not_called()
