import logging

import pytest

from streamalert.utils import logging as category_logging
from streamalert.utils.logging import CategoryFilter, HealthCheckFilter, get_logger, parse_categories


def _record(message):
    return logging.LogRecord("test", logging.INFO, __file__, 1, message, None, None)


@pytest.mark.unit
class TestCategories:
    def test_parse(self):
        assert parse_categories(None) is None
        assert parse_categories("") is None
        assert parse_categories("Twitch, kick,,") == frozenset({"twitch", "kick"})

    def test_all_categories_shown_by_default(self, monkeypatch):
        monkeypatch.setattr(category_logging, "_allowed_categories", None)
        assert CategoryFilter("kick").filter(_record("x")) is True

    def test_filter_by_category(self, monkeypatch):
        monkeypatch.setattr(category_logging, "_allowed_categories", frozenset({"twitch"}))

        assert CategoryFilter("twitch").filter(_record("x")) is True
        assert CategoryFilter("kick").filter(_record("x")) is False
        assert CategoryFilter(None).filter(_record("x")) is False

    def test_get_logger_replaces_category_filter(self):
        logger = get_logger("streamalert.tests.logging", category="notify")
        logger = get_logger("streamalert.tests.logging", category="webhook")

        filters = [f for f in logger.filters if isinstance(f, CategoryFilter)]
        assert [f.category for f in filters] == ["webhook"]


@pytest.mark.unit
def test_health_checks_dropped_from_access_log():
    health_filter = HealthCheckFilter()

    assert health_filter.filter(_record('127.0.0.1 - "GET /health HTTP/1.1" 200')) is False
    assert health_filter.filter(_record('127.0.0.1 - "POST /events/twitch HTTP/1.1" 200')) is True
