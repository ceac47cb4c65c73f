"""
Command line entry point, run against a fake-backed repository.
"""
from __future__ import annotations

import pytest

from pg_large_objects import cli
from pg_large_objects import repo as repo_module
from pg_large_objects.repo import LargeObjectRepo
from utils.fake_psycopg import install_fake_psycopg


@pytest.fixture
def repo(monkeypatch, server, make_config):
    install_fake_psycopg(monkeypatch, repo_module, server)
    return LargeObjectRepo(config=make_config())


def test_import_size_export_remove(tmp_path, capsys, repo, server):
    source = tmp_path / "in.bin"
    source.write_bytes(b"\x00\x01payload")

    assert cli.main(["import", str(source)], repo=repo) == 0
    oid = int(capsys.readouterr().out.strip())
    assert server.get(oid) == b"\x00\x01payload"

    assert cli.main(["size", str(oid)], repo=repo) == 0
    assert capsys.readouterr().out.strip() == "9"

    target = tmp_path / "out.bin"
    assert cli.main(["export", str(oid), "-o", str(target)], repo=repo) == 0
    assert target.read_bytes() == b"\x00\x01payload"

    assert cli.main(["remove", str(oid)], repo=repo) == 0
    assert server.objects == {}


def test_missing_object_exits_non_zero(repo, caplog):
    assert cli.main(["remove", "12345"], repo=repo) == 1
    assert "remove failed" in caplog.text


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.main([])
