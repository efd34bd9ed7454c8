"""
Tests for the consent-sync CLI, end to end against a local aiohttp server
and a temporary SQLite store.
"""

import asyncio
import io
import json
import logging
import threading

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from consent_sync.cli import ConsentCLI, create_parser
from consent_sync.config import Config
from consent_sync.logging_utils import ROOT_LOGGER, cleanup_handlers
from consent_sync.prompt import ConsolePrompt

ENDPOINT = "consents"


@pytest.fixture(autouse=True)
def restore_package_logger():
    logger = logging.getLogger(ROOT_LOGGER)
    level, propagate = logger.level, logger.propagate
    yield
    cleanup_handlers(logger)
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def received():
    return []


@pytest.fixture
def response_status():
    return {"code": 204}


@pytest_asyncio.fixture
async def server(received, response_status):
    async def handler(request: web.Request) -> web.Response:
        received.append(await request.json())
        return web.Response(status=response_status["code"])

    app = web.Application()
    app.router.add_post(f"/{ENDPOINT}", handler)
    async with TestServer(app) as test_server:
        yield test_server


@pytest.fixture
def make_config(tmp_path):
    def _make(server):
        config = Config(load_env_file=False)
        config.set("storage.db_path", str(tmp_path / "consent.db"))
        config.set("device.device_id", "test_id")
        config.set("remote.base_url", str(server.make_url("/")))
        config.set("remote.endpoint", ENDPOINT)
        config.set("sync.base_delay", 0)
        return config
    return _make


async def run_cli(config, *argv):
    return await ConsentCLI(config=config).run(list(argv))


class TestParser:

    def test_set_requires_known_decision(self):
        parser = create_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["set", "maybe"])

    def test_prompt_options(self):
        args = create_parser().parse_args(["prompt", "--title", "T", "--message", "M"])
        assert (args.command, args.title, args.message) == ("prompt", "T", "M")


class TestCommands:

    @pytest.mark.asyncio
    async def test_no_command_prints_help(self, capsys):
        assert await ConsentCLI(config=Config(load_env_file=False)).run([]) == 1
        assert "usage" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_status_of_fresh_store(self, server, make_config, capsys):
        assert await run_cli(make_config(server), "status", "--json") == 0

        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "UNDEFINED"
        assert data["remotely_synced"] is False

    @pytest.mark.asyncio
    async def test_set_sends_and_persists(self, server, make_config, received, capsys):
        config = make_config(server)

        assert await run_cli(config, "set", "deny") == 0
        assert "DENIED acknowledged" in capsys.readouterr().out
        assert received[0]["status"] == "deny"
        assert received[0]["device_id"] == "test_id"

        assert await run_cli(config, "status") == 0
        out = capsys.readouterr().out
        assert "Status: DENIED" in out
        assert "Synchronized: Yes" in out

    @pytest.mark.asyncio
    async def test_set_with_server_error(
        self, server, make_config, response_status, capsys
    ):
        response_status["code"] = 500
        config = make_config(server)

        assert await run_cli(config, "set", "accept") == 1
        assert "server sync failed" in capsys.readouterr().out

        await run_cli(config, "status", "--json")
        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "ACCEPTED"
        assert data["remotely_synced"] is False

    @pytest.mark.asyncio
    async def test_start_resends_unsynced_decision(
        self, server, make_config, response_status, received
    ):
        config = make_config(server)
        response_status["code"] = 503
        await run_cli(config, "set", "accept")

        response_status["code"] = 204
        assert await run_cli(config, "start") == 0

        assert [r["status"] for r in received] == ["accept", "accept"]
        assert received[0]["date"] == received[1]["date"]

    @pytest.mark.asyncio
    async def test_start_prompts_when_undecided(
        self, server, make_config, received, monkeypatch
    ):
        monkeypatch.setattr(
            ConsentCLI,
            "_prompt",
            lambda self: ConsolePrompt(input_func=lambda _: "y", output=io.StringIO()),
        )

        assert await run_cli(make_config(server), "start") == 0

        assert received[0]["status"] == "accept"

    @pytest.mark.asyncio
    async def test_prompt_does_not_block_event_loop(
        self, server, make_config, received, monkeypatch
    ):
        loop_ran = threading.Event()

        def answer(_):
            return "y" if loop_ran.wait(timeout=5) else "n"

        monkeypatch.setattr(
            ConsentCLI,
            "_prompt",
            lambda self: ConsolePrompt(input_func=answer, output=io.StringIO()),
        )
        asyncio.get_running_loop().call_soon(loop_ran.set)

        assert await run_cli(make_config(server), "prompt") == 0

        assert received[0]["status"] == "accept"

    @pytest.mark.asyncio
    async def test_start_with_dismissed_prompt(
        self, server, make_config, received, monkeypatch, capsys
    ):
        def dismiss(_):
            raise EOFError

        monkeypatch.setattr(
            ConsentCLI,
            "_prompt",
            lambda self: ConsolePrompt(input_func=dismiss, output=io.StringIO()),
        )

        assert await run_cli(make_config(server), "start") == 1

        assert received == []
        assert "No decision recorded" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_start_when_synced_sends_nothing(
        self, server, make_config, received, capsys
    ):
        config = make_config(server)
        await run_cli(config, "set", "accept")
        capsys.readouterr()

        assert await run_cli(config, "start") == 0

        assert len(received) == 1
        assert "synchronized: True" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_sync_without_decision(self, server, make_config, capsys):
        assert await run_cli(make_config(server), "sync") == 1
        assert "No consent decision stored" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_sync_reports_rejection(
        self, server, make_config, response_status, capsys
    ):
        config = make_config(server)
        await run_cli(config, "set", "deny")
        response_status["code"] = 400
        capsys.readouterr()

        assert await run_cli(config, "sync") == 1
        assert "response code: 400" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_reset(self, server, make_config, capsys):
        config = make_config(server)
        await run_cli(config, "set", "accept")

        assert await run_cli(config, "reset") == 0

        await run_cli(config, "status", "--json")
        out = capsys.readouterr().out
        assert json.loads(out[out.index("{"):])["status"] == "UNDEFINED"
