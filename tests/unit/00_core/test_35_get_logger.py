import logging

from mail_dispatcher.logger import get_logger


def test_default_logger_name():
    assert get_logger().name == "MailDispatcher"


def test_component_loggers_are_children():
    parent = logging.getLogger("MailDispatcher")
    logger = get_logger("RateLimiter")
    assert logger.name == "MailDispatcher.RateLimiter"
    assert logger.parent is parent


def test_dotted_names_are_kept():
    assert get_logger("myapp.mail").name == "myapp.mail"


def test_get_logger_reuses_existing_logger():
    assert get_logger("Queue") is get_logger("Queue")


def test_components_log_under_dispatcher_hierarchy(caplog):
    from mail_dispatcher.rate_limit import RateLimiter

    limiter = RateLimiter(window=60.0, max_requests=1)
    with caplog.at_level(logging.INFO, logger="MailDispatcher"):
        limiter.try_admit()
        limiter.try_admit()

    assert [r.name for r in caplog.records] == ["MailDispatcher.RateLimiter"]
    assert "Rate limited: too many requests (1 in the last 60.000s)." in caplog.text
