"""Configurações centralizadas do portal_chat.

Este módulo exporta:
- Settings: classe de configuração via variáveis de ambiente
- get_settings: função cacheada para obter instância única

Uso típico:
    from portal_chat.config import get_settings
"""

from portal_chat.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
