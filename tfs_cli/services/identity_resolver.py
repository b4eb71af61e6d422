"""
Resolução do usuário atual (dono do PAT) sem depender de um único endpoint de identidade.

Estratégias, em ordem; a próxima só é tentada se a anterior não resolveu:
1. Perfil (profiles/me): "Nome<email>", ou o que existir.
2. Header X-VSS-UserData ("id:uniqueName") de uma chamada autenticada ao projeto,
   enriquecido pelo diretório de identidades (identityIds=<id>) quando possível.
Falhas de cada estágio não são fatais; só a criação de work item exige um resultado.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import JsonValue

from tfs_cli.errors import AssignedToRequiredError, CancelledError, TfsError, WhoamiUnavailableError
from tfs_cli.models.identity_models import HeaderIdentity, Identity, Profile
from tfs_cli.services.devops_client import AzureDevOpsClient
from tfs_cli.services.transport import CancelToken

logger = logging.getLogger(__name__)

SOURCE_PROFILE = "profile"
SOURCE_HEADERS = "headers"


def identity_unique_name(identity: Identity, fallback: str = "") -> str:
    """Prioridade: DOMINIO\\conta, Mail, Account, UniqueName, fallback (uniqueName do header)."""
    domain = identity.property_value("Domain")
    account = identity.property_value("Account")
    if domain and account:
        return f"{domain}\\{account}"
    for key in ("Mail", "Account", "UniqueName"):
        value = identity.property_value(key)
        if value:
            return value
    return fallback


def identity_reference(identity: Identity, fallback_unique: str = "") -> dict[str, str]:
    """Referência estruturada usada em System.AssignedTo: id, displayName, descriptor, uniqueName."""
    ref = {"id": identity.id}
    if identity.provider_display_name:
        ref["displayName"] = identity.provider_display_name
    descriptor = identity.preferred_descriptor()
    if descriptor:
        ref["descriptor"] = descriptor
    unique = identity_unique_name(identity, fallback_unique)
    if unique:
        ref["uniqueName"] = unique
    return ref


@dataclass(frozen=True)
class IdentityResolution:
    """Resultado da resolução: de onde veio e o valor pronto para System.AssignedTo."""

    source: str
    assigned_to: JsonValue
    profile: Optional[Profile] = None
    header: Optional[HeaderIdentity] = None
    identity: Optional[Identity] = None

    def to_dict(self) -> dict[str, Any]:
        if self.profile is not None:
            return {
                "displayName": self.profile.display_name,
                "email": self.profile.email_address,
                "id": self.profile.id,
                "assignedTo": self.assigned_to,
                "source": self.source,
            }
        header = self.header or HeaderIdentity()
        return {
            "id": header.id,
            "uniqueName": header.unique_name,
            "assignedTo": self.assigned_to,
            "source": self.source,
        }


Strategy = Callable[[Optional[CancelToken], list[TfsError]], Optional[IdentityResolution]]


class IdentityResolver:
    """Cascata de estratégias independentes; cada uma retorna um resultado ou None."""

    def __init__(self, client: AzureDevOpsClient) -> None:
        self.client = client

    def _strategies(self) -> tuple[Strategy, ...]:
        return (self._from_profile, self._from_headers)

    def resolve(
        self, cancel: Optional[CancelToken] = None, failures: Optional[list[TfsError]] = None
    ) -> Optional[IdentityResolution]:
        """Primeiro resultado das estratégias, ou None. Erros de cada estágio vão para `failures`."""
        failures = failures if failures is not None else []
        for strategy in self._strategies():
            result = strategy(cancel, failures)
            if result is not None:
                return result
        return None

    def whoami(self, cancel: Optional[CancelToken] = None) -> IdentityResolution:
        """Leitura: aceita resultado parcial (header sem diretório). Sem resultado, levanta o último erro."""
        failures: list[TfsError] = []
        result = self.resolve(cancel, failures)
        if result is None:
            if failures:
                raise failures[-1]
            raise WhoamiUnavailableError("identity could not be resolved")
        return result

    def resolve_assignee(self, cancel: Optional[CancelToken] = None) -> JsonValue:
        """Valor para System.AssignedTo na criação. Esgotadas as estratégias: AssignedToRequiredError."""
        failures: list[TfsError] = []
        result = self.resolve(cancel, failures)
        if result is None or result.assigned_to in (None, ""):
            raise AssignedToRequiredError(
                "assigned-to is required and could not be resolved from PAT profile",
                details=[f.to_envelope()["error"] for f in failures] or None,
            )
        return result.assigned_to

    # -- estratégias ---------------------------------------------------------------------------

    def _from_profile(self, cancel: Optional[CancelToken], failures: list[TfsError]) -> Optional[IdentityResolution]:
        try:
            profile = self.client.profile_me(cancel=cancel)
        except CancelledError:
            raise
        except TfsError as e:
            logger.debug("Perfil indisponível: %s", e)
            failures.append(e)
            return None
        display = profile.display_value()
        if not display:
            logger.debug("Perfil sem nome nem e-mail; tentando headers")
            return None
        return IdentityResolution(source=SOURCE_PROFILE, assigned_to=display, profile=profile)

    def _from_headers(self, cancel: Optional[CancelToken], failures: list[TfsError]) -> Optional[IdentityResolution]:
        try:
            header = self.client.whoami_from_headers(cancel=cancel)
        except CancelledError:
            raise
        except TfsError as e:
            logger.debug("Identidade via header indisponível: %s", e)
            failures.append(e)
            return None
        identity = self._lookup_directory(header, cancel, failures)
        if identity is not None:
            assigned: Optional[JsonValue] = identity_reference(identity, header.unique_name)
        else:
            assigned = header.reference()
        if assigned is None:
            return None
        return IdentityResolution(source=SOURCE_HEADERS, assigned_to=assigned, header=header, identity=identity)

    def _lookup_directory(
        self, header: HeaderIdentity, cancel: Optional[CancelToken], failures: list[TfsError]
    ) -> Optional[Identity]:
        if not header.id:
            return None
        try:
            return self.client.resolve_identity_by_id(header.id, cancel=cancel)
        except CancelledError:
            raise
        except TfsError as e:
            logger.debug("Identidade %s não encontrada no diretório: %s", header.id, e)
            failures.append(e)
            return None
