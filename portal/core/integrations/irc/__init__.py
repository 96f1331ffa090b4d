"""IRC (Atheme NickServ) integration."""
from .atheme import AthemeClient, AthemeFaultError
from .integration import IRC_INTEGRATION_ID, IrcIntegration

__all__ = ["AthemeClient", "AthemeFaultError", "IRC_INTEGRATION_ID", "IrcIntegration"]
