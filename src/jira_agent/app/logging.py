import logging
from typing import Any


def log_request(data: dict[str, Any], logger: logging.Logger) -> None:
    logger.info(f"Event: {data.get('event_id', 'Unknown')}")
    logger.info(f"Thread: {data.get('thread_ts', 'Unknown')} in channel {data.get('channel_id', 'Unknown')}")
    logger.info(f"User: {data.get('user_id', 'Unknown')}")
    logger.debug(f"Message: {data.get('message', '')}")
