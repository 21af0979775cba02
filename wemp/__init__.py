"""wemp - WeChat official account bridge for conversational agents."""

__version__ = "0.1.0"
__logo__ = "💬"
