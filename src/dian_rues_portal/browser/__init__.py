from .proxies import ProxyConfig, ProxyPool, parse_proxy
from .session import BrowserSession

__all__ = ["BrowserSession", "ProxyConfig", "ProxyPool", "parse_proxy"]
