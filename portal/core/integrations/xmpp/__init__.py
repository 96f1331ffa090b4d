"""XMPP (Prosody) integration."""
from .integration import XMPP_INTEGRATION_ID, XmppIntegration
from .prosody import ProsodyAPIError, ProsodyClient

__all__ = ["ProsodyAPIError", "ProsodyClient", "XMPP_INTEGRATION_ID", "XmppIntegration"]
