# test_app_cli.py
#
# Tests for the postfeed command-line entry point.
#
# Imports
import functools
import logging
import httpx
import pytest
#
# Local Imports
from postfeed import app, config
from postfeed.DB.Posts_DB import PostsDB
from postfeed.Posts.Posts_Library import create_posts_library
#
#######################################################################################################################
#
# Functions:

@pytest.fixture
def cli_env(tmp_path, monkeypatch, mock_transport):
    """Config file, database path and an offline transport for main()."""
    config_path = tmp_path / "config.toml"
    config_path.write_text('[general]\nlog_level = "ERROR"\n[sync]\npage_size = 20\n', encoding="utf-8")
    monkeypatch.setattr(config, "_CONFIG_CACHE", None)
    monkeypatch.setattr(app, "create_posts_library",
                        functools.partial(create_posts_library, transport=mock_transport))

    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield {"config": str(config_path), "db": str(tmp_path / "cli_posts.db")}
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


def run_main(cli_env, *extra):
    return app.main(["--config", cli_env["config"], "--db", cli_env["db"], *extra])


def cached_ids(db_path):
    db = PostsDB(db_path, client_id="cli_test_reader")
    try:
        return [p.id for p in db.get_all_posts()]
    finally:
        db.close()


def test_loads_requested_pages_and_prints_titles(cli_env, capsys):
    assert run_main(cli_env, "--pages", "2") == 0

    out = capsys.readouterr().out.splitlines()
    assert len(out) == 40
    assert out[0].split(None, 1) == ["1", "Title 1"]
    assert cached_ids(cli_env["db"]) == list(range(1, 41))


def test_list_only_does_not_fetch(cli_env, capsys):
    run_main(cli_env, "--pages", "1")
    capsys.readouterr()

    assert run_main(cli_env, "--list") == 0
    assert len(capsys.readouterr().out.splitlines()) == 20


def test_cursor_is_not_persisted_between_runs(cli_env):
    # A new process starts at page 1 again; upserts keep the cache free of duplicates
    run_main(cli_env, "--pages", "1")
    run_main(cli_env, "--pages", "1")
    assert cached_ids(cli_env["db"]) == list(range(1, 21))


def test_refresh_replaces_cache_with_first_page(cli_env):
    run_main(cli_env, "--pages", "3")
    assert run_main(cli_env, "--refresh") == 0
    assert cached_ids(cli_env["db"]) == list(range(1, 21))


def test_failure_gives_exit_code_one(cli_env, monkeypatch, capsys):
    failing = httpx.MockTransport(lambda request: httpx.Response(500))
    monkeypatch.setattr(app, "create_posts_library", functools.partial(create_posts_library, transport=failing))

    assert run_main(cli_env, "--pages", "1") == 1
    assert "failed (transport)" in capsys.readouterr().err


def test_negative_pages_rejected(cli_env):
    assert run_main(cli_env, "--pages", "-1") == 2

#
# End of test_app_cli.py
#######################################################################################################################
