# Настройка логирования для узла с чейнкодом supply
import logging
import os

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
CHANNEL_ID = os.environ.get("CHANNEL_ID", "mychannel")
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(channel)s | %(name)s | %(message)s"

# Сторонние библиотеки, чьи логи нужны только с WARNING
NOISY_LOGGERS = ("werkzeug", "httpx", "httpcore")


class ChannelFilter(logging.Filter):
    """Проставляет в запись поле channel (канал узла), если его не передали через extra."""

    def __init__(self, channel_id):
        super().__init__()
        self.channel_id = channel_id

    def filter(self, record):
        if not hasattr(record, "channel"):
            record.channel = self.channel_id
        return True


def setup_logging(level=None, channel_id=None):
    """
    Настройка корневого логгера и формата. Уровень берётся из LOG_LEVEL, канал из CHANNEL_ID,
    если не переданы явно. Повторный вызов не добавляет фильтр дважды.
    """
    level_name = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger()
    for handler in root.handlers:
        if not any(isinstance(f, ChannelFilter) for f in handler.filters):
            handler.addFilter(ChannelFilter(channel_id or CHANNEL_ID))
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logging.getLogger("supply_node")


def get_logger(name: str) -> logging.Logger:
    """Возвращает логгер с заданным именем."""
    return logging.getLogger(name)
