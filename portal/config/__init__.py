"""Configuration module for the integrations portal."""
from .settings import AppConfig, IrcSettings, XmppSettings, load_settings

__all__ = ["AppConfig", "IrcSettings", "XmppSettings", "load_settings"]
