"""threadbridge - Slack thread to agent session bridge."""

__version__ = "0.1.0"
__logo__ = "🧵"
