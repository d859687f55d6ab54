"""
Tests for selfcare_recommender/utils/logging.py.

What we test
------------
- log_context binds, nests, drops None values and resets on exit.
- Context survives into tasks started with asyncio.gather.
- Text lines end with the bound context; JSON lines carry it as keys.
- Output outside a context has no context suffix.
"""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from selfcare_recommender.config import LoggingConfig
from selfcare_recommender.utils.logging import configure_logging, current_context, log_context


@pytest.fixture(autouse=True)
def _reset_root_logger():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.WARNING)


def _configure(tmp_path, json_format: bool):
    log_file = tmp_path / "logs" / "run.log"
    configure_logging(LoggingConfig(level="INFO", log_file=str(log_file), json_format=json_format))
    return log_file


def _flush():
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestLogContext:
    def test_bind_nest_and_reset(self):
        assert current_context() == {}
        with log_context(user_id="u-1", analysis_id=None):
            assert current_context() == {"user_id": "u-1"}
            with log_context(run_slug="r-1"):
                assert current_context() == {"user_id": "u-1", "run_slug": "r-1"}
            assert current_context() == {"user_id": "u-1"}
        assert current_context() == {}

    def test_visible_inside_gathered_tasks(self):
        async def read():
            await asyncio.sleep(0)
            return current_context()

        async def main():
            with log_context(user_id="u-2"):
                return await asyncio.gather(read(), read())

        assert asyncio.run(main()) == [{"user_id": "u-2"}, {"user_id": "u-2"}]


class TestConfigureLogging:
    def test_text_format_appends_context(self, tmp_path):
        log_file = _configure(tmp_path, json_format=False)
        log = logging.getLogger("selfcare_recommender.test")
        with log_context(user_id="u-1", run_slug="r-1"):
            log.info("Generation starting")
        log.info("Outside")
        _flush()

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert lines[0].endswith("Generation starting [user=u-1 run=r-1]")
        assert lines[1].endswith("selfcare_recommender.test: Outside")

    def test_json_format_includes_context_keys(self, tmp_path):
        log_file = _configure(tmp_path, json_format=True)
        with log_context(user_id="пользователь", analysis_id=7):
            logging.getLogger("selfcare_recommender.test").warning("Пропущен анализ")
        _flush()

        payload = json.loads(log_file.read_text(encoding="utf-8").splitlines()[0])
        assert payload["level"] == "WARNING"
        assert payload["msg"] == "Пропущен анализ"
        assert payload["user"] == "пользователь"
        assert payload["analysis"] == 7

    def test_level_filters_records(self, tmp_path):
        log_file = _configure(tmp_path, json_format=False)
        logging.getLogger("selfcare_recommender.test").debug("hidden")
        _flush()
        assert log_file.read_text(encoding="utf-8") == ""
