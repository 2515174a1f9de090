from typing import Protocol, Any, Dict
import json
import logging


class SecurityEventSink(Protocol):
    async def emit(self, event: Dict[str, Any]) -> None:
        """Emit a security event to the sink."""
        ...


class LoggingSink:
    def __init__(self, logger_name: str = "piivault.security"):
        self._logger = logging.getLogger(logger_name)

    async def emit(self, event: Dict[str, Any]) -> None:
        self._logger.warning(json.dumps(event, sort_keys=True))
