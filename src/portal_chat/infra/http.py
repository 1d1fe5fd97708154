"""Cliente HTTP assíncrono com retry, timeout e logging.

Usado pelos clientes do gateway de chat:
- Retry com backoff exponencial (apenas 429/5xx/timeout/conexão)
- Timeout sempre configurado
- Logging estruturado sem corpo de mensagens nem tokens
- Erros não retentáveis preservam o corpo JSON para mapeamento de domínio
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from portal_chat.observability.logging import get_logger
from portal_chat.observability.middleware import CORRELATION_HEADER, get_correlation_id

if TYPE_CHECKING:
    from portal_chat.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

_TOKEN_QUERY_PATTERN = re.compile(r"(token|access_token)=[^&]+")


def _sanitize_url(url: str) -> str:
    """Remove tokens da URL para logging seguro."""
    return _TOKEN_QUERY_PATTERN.sub(lambda m: f"{m.group(1)}=***", url)


@dataclass
class HttpClientConfig:
    """Configuração do cliente HTTP."""

    timeout_seconds: float = 15.0
    max_retries: int = 0
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 10.0
    default_headers: dict[str, str] = field(default_factory=dict)
    verify_ssl: bool = True
    transport: httpx.AsyncBaseTransport | None = None


class HttpError(Exception):
    """Erro de requisição HTTP sem expor informações sensíveis."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
        body: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable
        self.body = body or {}


def _is_retryable_status(status_code: int) -> bool:
    """Determina se status HTTP permite retry (429 ou 5xx)."""
    return status_code == 429 or 500 <= status_code < 600


def _calculate_backoff(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """Calcula tempo de espera com backoff exponencial."""
    return min((2**attempt) * base_seconds, max_seconds)


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


class HttpClient:
    """Cliente HTTP assíncrono com retry e logging.

    Uso típico:
        async with HttpClient(config) as client:
            response = await client.post(url, json=payload)
    """

    def __init__(self, config: HttpClientConfig | None = None) -> None:
        self._config = config or HttpClientConfig()
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente httpx (lazy loading)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers=self._config.default_headers,
                verify=self._config.verify_ssl,
                transport=self._config.transport,
            )
        return self._client

    async def close(self) -> None:
        """Fecha o cliente e libera recursos."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Executa requisição com retry automático.

        Raises:
            HttpError: Erro não retentável ou tentativas esgotadas
        """
        client = await self._get_client()
        cfg = self._config
        last_error: HttpError | None = None

        headers = dict(kwargs.pop("headers", None) or {})
        correlation_id = get_correlation_id()
        if correlation_id:
            headers.setdefault(CORRELATION_HEADER, correlation_id)

        for attempt in range(cfg.max_retries + 1):
            logger.debug(
                "Executando requisição HTTP",
                extra={
                    "method": method,
                    "url": _sanitize_url(url),
                    "attempt": attempt + 1,
                    "max_retries": cfg.max_retries,
                },
            )
            try:
                response = await client.request(method, url, headers=headers, **kwargs)
            except httpx.TimeoutException as exc:
                last_error = self._transient(exc, "Timeout", method, url, attempt)
            except httpx.TransportError as exc:
                last_error = self._transient(exc, "Erro de conexão", method, url, attempt)
            else:
                if response.is_success:
                    return response
                last_error = HttpError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    is_retryable=_is_retryable_status(response.status_code),
                    body=_error_body(response),
                )
                if not last_error.is_retryable:
                    logger.warning(
                        "Requisição HTTP falhou (não retryable)",
                        extra={
                            "method": method,
                            "url": _sanitize_url(url),
                            "status_code": response.status_code,
                        },
                    )
                    raise last_error

            if attempt < cfg.max_retries:
                backoff = _calculate_backoff(
                    attempt, cfg.backoff_base_seconds, cfg.backoff_max_seconds
                )
                logger.info(
                    "Aguardando backoff antes de retry",
                    extra={"backoff_seconds": backoff, "next_attempt": attempt + 2},
                )
                await asyncio.sleep(backoff)

        logger.error(
            "Esgotou tentativas de retry",
            extra={
                "method": method,
                "url": _sanitize_url(url),
                "total_attempts": cfg.max_retries + 1,
            },
        )
        raise last_error or HttpError("Falha após todos os retries")

    @staticmethod
    def _transient(
        exc: Exception, label: str, method: str, url: str, attempt: int
    ) -> HttpError:
        logger.warning(
            f"{label} em requisição HTTP",
            extra={
                "method": method,
                "url": _sanitize_url(url),
                "attempt": attempt + 1,
                "error_type": type(exc).__name__,
            },
        )
        return HttpError(label, is_retryable=True)

    async def post(
        self,
        url: str,
        json: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Executa POST com retry."""
        return await self.request("POST", url, json=json, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Executa GET com retry."""
        return await self.request("GET", url, **kwargs)


def create_http_client(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpClient:
    """Factory para criar cliente HTTP do gateway conforme settings."""
    if settings is None:
        from portal_chat.config.settings import get_settings

        settings = get_settings()

    config = HttpClientConfig(
        timeout_seconds=settings.chat_gateway_timeout_seconds,
        max_retries=settings.chat_gateway_max_retries,
        backoff_base_seconds=settings.chat_gateway_backoff_seconds,
        default_headers={"User-Agent": f"{settings.service_name}/{settings.version}"},
        verify_ssl=settings.is_production or settings.is_staging,
        transport=transport,
    )

    logger.info(
        "Cliente HTTP criado",
        extra={"timeout_seconds": config.timeout_seconds, "max_retries": config.max_retries},
    )
    return HttpClient(config)
