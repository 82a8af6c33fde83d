"""Chat channel implementations."""

from threadbridge.channels.base import BaseChannel
from threadbridge.channels.slack import SlackAPIError, SlackChannel, SlackProgressSink, SlackWebClient

__all__ = ["BaseChannel", "SlackAPIError", "SlackChannel", "SlackProgressSink", "SlackWebClient"]
