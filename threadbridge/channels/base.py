"""Base channel interface for chat platforms."""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeAlias

from loguru import logger

from threadbridge.core.models import ThreadEvent

MentionHandler: TypeAlias = Callable[[ThreadEvent], Awaitable[object]]


class BaseChannel(ABC):
    """
    Abstract base class for chat channel implementations.

    A channel turns platform events into ThreadEvents for the mention handler
    and posts replies back into threads.
    """

    name: str = "base"

    def __init__(self, config: Any, on_mention: MentionHandler | None = None):
        """
        Initialize the channel.

        Args:
            config: Channel-specific configuration.
            on_mention: Coroutine called for every mention addressed to the bot.
        """
        self.config = config
        self.on_mention = on_mention
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """
        Start the channel and begin listening for events.

        This should be a long-running async task that connects to the
        platform and forwards mentions via _handle_mention().
        """

    @abstractmethod
    async def stop(self) -> None:
        """Stop the channel and clean up resources."""

    @abstractmethod
    async def send(self, channel_id: str, text: str, *, thread_root_id: str | None = None) -> str | None:
        """
        Post a message, optionally as a thread reply.

        Returns:
            The platform id of the posted message, when known.
        """

    async def _handle_mention(self, event: ThreadEvent) -> None:
        if self.on_mention is None:
            logger.warning("Channel {} has no mention handler; dropping event {}", self.name, event.message_id)
            return
        await self.on_mention(event)

    @property
    def is_running(self) -> bool:
        """Check if the channel is running."""
        return self._running
