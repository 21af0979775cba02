"""Official account HTTP client and the bridge's own HTTP API."""

from wemp.api.client import WechatMpClient

__all__ = ["WechatMpClient"]
