"""Erros tipados do cliente. Cada classe corresponde a um código estável exposto no envelope JSON."""
from typing import Any


class TfsError(Exception):
    """Erro base: carrega código, mensagem e detalhes opcionais."""

    code = "internal_error"

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_envelope(self) -> dict[str, Any]:
        """Envelope {"error": {...}} usado na saída JSON."""
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return {"error": body}


class ConfigMissingError(TfsError):
    code = "config_missing"


class ConfigInvalidError(TfsError):
    code = "config_invalid"


class InvalidArgsError(TfsError):
    code = "invalid_args"


class UnknownCommandError(TfsError):
    code = "unknown_command"


class ConfirmationRequiredError(TfsError):
    code = "confirmation_required"


class HTTPStatusError(TfsError):
    """Status HTTP não-2xx terminal. `body` guarda o corpo bruto da resposta."""

    code = "http_error"

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"request failed with status {status_code}", details=body or None)
        self.status_code = status_code
        self.body = body


class HTTPRetryError(HTTPStatusError):
    """Status retentável (429/5xx) que esgotou as tentativas."""

    code = "http_retry"

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(status_code, body)
        self.message = f"retryable status {status_code}: retries exhausted"
        self.args = (self.message,)


class TransportError(TfsError):
    """Falha de rede (conexão recusada, timeout). Nunca é retentada."""

    code = "network_error"


class CancelledError(TfsError):
    code = "cancelled"

    def __init__(self, message: str = "request cancelled", details: Any = None) -> None:
        super().__init__(message, details)


class DecodeError(TfsError):
    """Resposta não corresponde ao modelo esperado."""

    code = "decode_error"


class WhoamiUnavailableError(TfsError):
    code = "whoami_unavailable"


class IdentityNotFoundError(TfsError):
    code = "identity_not_found"


class AssignedToRequiredError(TfsError):
    code = "assigned_to_required"
