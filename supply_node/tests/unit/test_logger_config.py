# Unit-тесты настройки логирования: поле channel в записях
import io
import logging

from supply_node.logger_config import LOG_FORMAT, ChannelFilter, get_logger, setup_logging


def _record(msg="event"):
    return logging.LogRecord("supply", logging.INFO, __file__, 1, msg, None, None)


def test_channel_filter_sets_default():
    record = _record()
    assert ChannelFilter("ch1").filter(record) is True
    assert record.channel == "ch1"


def test_channel_filter_keeps_explicit_channel():
    record = _record()
    record.channel = "other"
    ChannelFilter("ch1").filter(record)
    assert record.channel == "other"


def test_setup_logging_adds_channel_once():
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    try:
        setup_logging(channel_id="testchannel")
        setup_logging(channel_id="testchannel")
        assert sum(isinstance(f, ChannelFilter) for f in handler.filters) == 1
        get_logger("supply").warning("init_product_exists: puid=%s", "1q2")
    finally:
        root.removeHandler(handler)
    assert "| WARNING | testchannel | supply | init_product_exists: puid=1q2" in stream.getvalue()
