"""
paychan - pay-per-use peer transport over payment channels.
"""

__version__ = "0.2.0"
__logo__ = "💸"

from paychan.config.schema import PluginConfig
from paychan.handlers import HandlerRegistry
from paychan.plugin import PaychanPlugin, SessionState

__all__ = ["HandlerRegistry", "PaychanPlugin", "PluginConfig", "SessionState", "__logo__", "__version__"]
