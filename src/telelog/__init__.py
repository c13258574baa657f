"""Route Python log records to Telegram forum topics.

The package is split the same way as any adapter-based app: ``core`` holds
the routing and orchestration logic, ``adapters`` holds everything that
touches ``logging``, HTTP, threads or module introspection.
"""

from telelog.adapters.telegram_formatter import TelegramFormatter
from telelog.adapters.telegram_log_handler import TelegramLogHandler
from telelog.core.topics import TopicLevel

__all__ = ["TelegramFormatter", "TelegramLogHandler", "TopicLevel"]
