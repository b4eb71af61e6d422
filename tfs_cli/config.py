"""Configurações do cliente: variáveis de ambiente (Pydantic Settings), arquivo JSON e config imutável do cliente."""
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tfs_cli.errors import ConfigInvalidError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
REDACTED = "***"

# Estados padrão do "my": tokens do workflow de uma instalação específica, não são universais
DEFAULT_MY_STATES = "Разработка,Выполняется"


def _unset_placeholder(v: object) -> object:
    """Valores no formato $(NOME) vêm de variáveis de pipeline não definidas: tratar como vazio."""
    if isinstance(v, str) and v.strip().startswith("$(") and v.strip().endswith(")"):
        return ""
    return v


class Settings(BaseSettings):
    """Configurações lidas do ambiente (e de um .env opcional no diretório atual)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    TFS_BASE_URL: str = Field(
        default="",
        description="URL base da coleção (ex.: https://tfs.example.com/DefaultCollection)",
    )
    TFS_PROJECT: str = Field(
        default="",
        description="Projeto padrão",
    )
    TFS_PAT: str = Field(
        default="",
        description="Personal Access Token (obrigatório via env, arquivo ou --pat)",
    )
    TFS_LOG_LEVEL: str = Field(
        default="WARNING",
        description="Nível de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    TFS_MY_DEFAULT_STATES: str = Field(
        default=DEFAULT_MY_STATES,
        description="Estados (CSV) usados pelo comando my quando nenhum --exclude-state é informado",
    )
    TFS_TIMEOUT_SECONDS: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        description="Timeout por tentativa HTTP, em segundos",
    )

    @field_validator("TFS_BASE_URL", "TFS_PROJECT", "TFS_PAT", "TFS_MY_DEFAULT_STATES", mode="before")
    @classmethod
    def parse_placeholder(cls, v: object) -> object:
        return _unset_placeholder(v)

    @field_validator("TFS_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def parse_timeout(cls, v: object) -> object:
        v = _unset_placeholder(v)
        if v == "" or v is None:
            return DEFAULT_TIMEOUT_SECONDS
        return v

    @property
    def my_default_states(self) -> list[str]:
        """TFS_MY_DEFAULT_STATES como lista (itens vazios descartados)."""
        return [s.strip() for s in self.TFS_MY_DEFAULT_STATES.split(",") if s.strip()]

    def to_client_config(self) -> "ClientConfig":
        return ClientConfig(base_url=self.TFS_BASE_URL, project=self.TFS_PROJECT, pat=self.TFS_PAT)


class ClientConfig(BaseModel):
    """
    Configuração imutável do cliente.
    Trocar de projeto gera um novo valor (with_project); o original nunca é alterado.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    base_url: str = Field(default="", alias="baseUrl")
    project: str = ""
    pat: str = ""
    insecure: bool = Field(default=False, exclude=True)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, exclude=True)
    # Destino do log detalhado (--verbose): qualquer objeto com write(str)
    log_sink: Optional[Any] = Field(default=None, exclude=True)

    def with_project(self, project: str) -> "ClientConfig":
        return self.model_copy(update={"project": project})

    def redacted(self) -> "ClientConfig":
        """Cópia com o PAT mascarado. Idempotente."""
        if not self.pat:
            return self
        return self.model_copy(update={"pat": REDACTED})

    def to_file_dict(self) -> dict[str, str]:
        """Representação persistida em config.json."""
        return self.model_dump(by_alias=True, include={"base_url", "project", "pat"})


def default_config_path() -> Path:
    """Caminho padrão: $XDG_CONFIG_HOME/tfs/config.json (ou ~/.config/tfs/config.json)."""
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "tfs" / "config.json"


def load_file_config(path: Path | None = None) -> ClientConfig:
    """Lê o arquivo de configuração. Arquivo inexistente retorna config vazia."""
    path = Path(path) if path else default_config_path()
    if not path.exists():
        return ClientConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigInvalidError(f"invalid config file {path}: {e.msg}", details=str(path)) from e
    if not isinstance(data, dict):
        raise ConfigInvalidError(f"invalid config file {path}: expected JSON object", details=str(path))
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigInvalidError(f"invalid config file {path}", details=e.errors(include_url=False)) from e


def save_file_config(config: ClientConfig, path: Path | None = None) -> Path:
    """Grava a configuração (JSON indentado, permissão 0600) e retorna o caminho."""
    path = Path(path) if path else default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_file_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    try:
        path.chmod(0o600)
    except OSError as e:
        logger.warning("Não foi possível ajustar permissão de %s: %s", path, e)
    return path


def merge_config(base: ClientConfig, override: ClientConfig) -> ClientConfig:
    """Campos não vazios de override substituem os de base."""
    update = {
        name: getattr(override, name)
        for name in ("base_url", "project", "pat")
        if getattr(override, name)
    }
    return base.model_copy(update=update) if update else base


def normalize_base_url(base_url: str, project: str) -> tuple[str, bool]:
    """
    Remove o segmento do projeto quando a URL base termina com /<projeto> (sem diferenciar maiúsculas).
    Ex.: https://tfs.example.com/DefaultCollection/MyProject -> https://tfs.example.com/DefaultCollection
    """
    if not base_url or not project:
        return base_url, False
    trimmed = base_url.rstrip("/")
    if not trimmed.lower().endswith("/" + project.lower()):
        return base_url, False
    parsed = urlsplit(trimmed)
    if parsed.scheme:
        parts = parsed.path.rstrip("/").split("/")
        if parts and parts[-1].lower() == project.lower():
            path = "/".join(parts[:-1]) or "/"
            return urlunsplit((parsed.scheme, parsed.netloc, path, parsed.query, parsed.fragment)).rstrip("/"), True
    return trimmed[: len(trimmed) - len(project) - 1].rstrip("/"), True
