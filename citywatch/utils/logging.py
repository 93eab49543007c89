import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Mapping, Optional

guild_id: ContextVar[Optional[int]] = ContextVar("guild_id", default=None)
channel_id: ContextVar[Optional[int]] = ContextVar("channel_id", default=None)
user_id: ContextVar[Optional[int]] = ContextVar("user_id", default=None)

LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class ContextualLogger(logging.LoggerAdapter):
    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:  # type: ignore
        context = []

        if gid := guild_id.get():
            context.append(f"guild:{gid}")
        if cid := channel_id.get():
            context.append(f"channel:{cid}")
        if uid := user_id.get():
            context.append(f"user:{uid}")

        if context:
            msg = f"[{' '.join(context)}] {msg}"

        return msg, kwargs


def get_logger(name: str) -> ContextualLogger:
    base_logger = logging.getLogger(name)
    return ContextualLogger(base_logger, {})


@contextmanager
def message_context(
    guild: Optional[int], channel: Optional[int], user: Optional[int]
) -> Iterator[None]:
    """Tag every log line emitted inside the block with the message's ids."""
    tokens = (guild_id.set(guild), channel_id.set(channel), user_id.set(user))
    try:
        yield
    finally:
        user_id.reset(tokens[2])
        channel_id.reset(tokens[1])
        guild_id.reset(tokens[0])


def format_meta(meta: Mapping[str, Any]) -> str:
    """Render structured fields as `key=value` pairs, sorted by key."""
    return " ".join(f"{key}={meta[key]}" for key in sorted(meta))
