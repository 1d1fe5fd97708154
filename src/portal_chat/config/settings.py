"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars.
Nunca hardcode tokens ou valores sensíveis.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_TYPING_BACKENDS: frozenset[str] = frozenset({"memory", "redis"})
VALID_AUTO_ASSIGN_MODES: frozenset[str] = frozenset(
    {"disabled", "round_robin", "least_active", "by_team"}
)


class Settings(BaseSettings):
    """Configurações lidas do ambiente.

    Textos padrão exibidos ao usuário final ficam em árabe (idioma do portal).
    """

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Aplicação
    service_name: str = "portal_chat"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"

    # Gateway de chat (lado cliente)
    chat_gateway_url: str = "http://localhost:8000/chat-api"
    chat_gateway_timeout_seconds: float = 15.0
    chat_gateway_max_retries: int = 0  # Mutations não são repetidas por padrão
    chat_gateway_backoff_seconds: float = 1.0

    # Janelas e sessões
    max_open_windows: int = 3
    poll_interval_seconds: float = 0.0  # 0 desabilita reconciliação periódica

    # Indicador de digitação
    typing_throttle_seconds: float = 1.0
    typing_expiry_seconds: float = 3.0
    typing_store_backend: str = "memory"  # memory | redis
    typing_ttl_seconds: int = 10
    redis_url: str | None = None

    # Padrões de conversa
    default_conversation_subject: str = "محادثة جديدة"
    default_client_name: str = "العميل"
    default_agent_name: str = "الدعم"
    default_admin_name: str = "الإدارة"
    system_sender_name: str = "النظام"
    welcome_message: str | None = None
    auto_assign_mode: str = "disabled"  # disabled | round_robin | least_active | by_team
    ticket_history_limit: int = 10
    message_max_length_chars: int = 4000

    def validate_typing_store_config(self) -> list[str]:
        """Valida backend do indicador de digitação.

        Em staging/prod, backend em memória é proibido: instâncias diferentes
        não enxergariam a digitação umas das outras.
        """
        errors: list[str] = []
        backend = self.typing_store_backend.lower()

        if backend not in VALID_TYPING_BACKENDS:
            errors.append(
                f"TYPING_STORE_BACKEND '{backend}' inválido. "
                f"Valores válidos: {sorted(VALID_TYPING_BACKENDS)}"
            )

        if backend == "memory" and (self.is_staging or self.is_production):
            errors.append("TYPING_STORE_BACKEND=memory é proibido em staging/production")

        if backend == "redis" and not self.redis_url:
            errors.append("TYPING_STORE_BACKEND=redis requer REDIS_URL configurado")

        return errors

    def validate_auto_assign_mode(self) -> list[str]:
        """Valida modo de atribuição automática."""
        errors: list[str] = []
        if self.auto_assign_mode.lower() not in VALID_AUTO_ASSIGN_MODES:
            errors.append(
                f"AUTO_ASSIGN_MODE '{self.auto_assign_mode}' inválido. "
                f"Valores válidos: {sorted(VALID_AUTO_ASSIGN_MODES)}"
            )
        return errors

    def validate_session_limits(self) -> list[str]:
        """Valida limites de janelas e temporizadores de digitação."""
        errors: list[str] = []
        if self.max_open_windows < 1:
            errors.append("MAX_OPEN_WINDOWS deve ser >= 1")
        if self.typing_throttle_seconds < 0:
            errors.append("TYPING_THROTTLE_SECONDS não pode ser negativo")
        if self.typing_expiry_seconds <= 0:
            errors.append("TYPING_EXPIRY_SECONDS deve ser > 0")
        if self.poll_interval_seconds < 0:
            errors.append("POLL_INTERVAL_SECONDS não pode ser negativo")
        return errors

    def validate_all(self) -> list[str]:
        """Agrega todas as validações de configuração."""
        return [
            *self.validate_typing_store_config(),
            *self.validate_auto_assign_mode(),
            *self.validate_session_limits(),
        ]

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna instância cacheada de Settings."""
    return Settings()
