"""portal_chat: motor de conversas de suporte em tempo real."""

__version__ = "0.1.0"
