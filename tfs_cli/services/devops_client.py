"""Cliente TFS / Azure DevOps REST API: WIQL, leitura, batch, criação e atualização de work items, tipos e identidades."""
import json
import logging
from collections.abc import Sequence
from typing import Any, Optional, TypeVar
from urllib.parse import quote, unquote, urlsplit

from pydantic import TypeAdapter, ValidationError

from tfs_cli.config import ClientConfig
from tfs_cli.errors import (
    ConfigMissingError,
    DecodeError,
    IdentityNotFoundError,
    InvalidArgsError,
    WhoamiUnavailableError,
)
from tfs_cli.models.devops_models import PatchOperation, QueryResult, WorkItem, WorkItemType
from tfs_cli.models.identity_models import HeaderIdentity, Identity, Profile
from tfs_cli.services.transport import (
    JSON_CONTENT_TYPE,
    JSON_PATCH_CONTENT_TYPE,
    CancelToken,
    Transport,
    TransportResponse,
)

logger = logging.getLogger(__name__)

API_VERSION = "6.0"
USER_DATA_HEADER = "X-VSS-UserData"

# Perfil em nuvem fica em outro host; para servidores locais usa a própria URL base (aproximação)
CLOUD_HOST_SUFFIXES = ("dev.azure.com", "visualstudio.com")
CLOUD_PROFILE_BASE_URL = "https://app.vssps.visualstudio.com"

T = TypeVar("T")

_query_result = TypeAdapter(QueryResult)
_work_item = TypeAdapter(WorkItem)
_work_item_list = TypeAdapter(list[WorkItem])
_work_item_type_list = TypeAdapter(list[WorkItemType])
_identity_list = TypeAdapter(list[Identity])
_profile = TypeAdapter(Profile)


def join_url(base: str, path: str) -> str:
    return base.rstrip("/") + "/" + path.lstrip("/")


def _decode(adapter: TypeAdapter[T], data: Any, operation: str) -> T:
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        raise DecodeError(
            f"unexpected {operation} response shape",
            details=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


def _json_body(resp: TransportResponse, operation: str) -> Any:
    try:
        return json.loads(resp.body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"invalid JSON in {operation} response") from e


def _dump(payload: Any) -> bytes:
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def _patch_payload(patch: Sequence[PatchOperation]) -> list[dict[str, Any]]:
    return [op.model_dump(mode="json") for op in patch]


class AzureDevOpsClient:
    """Operações tipadas sobre o Transport. Imutável: trocar de projeto gera outro cliente."""

    def __init__(self, config: ClientConfig, transport: Optional[Transport] = None) -> None:
        if not config.base_url:
            raise ConfigMissingError("base URL is required")
        if not config.pat:
            raise ConfigMissingError("PAT is required")
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.api_version = API_VERSION
        self.transport = transport or Transport(
            config.pat,
            insecure=config.insecure,
            timeout=config.timeout_seconds,
            log_sink=config.log_sink,
        )

    @property
    def project(self) -> str:
        return self.config.project

    def with_project(self, project: str) -> "AzureDevOpsClient":
        """Novo cliente para outro projeto; compartilha o Transport (sem estado por chamada)."""
        return AzureDevOpsClient(self.config.with_project(project), transport=self.transport)

    def _project_path(self, endpoint: str) -> str:
        if not self.project:
            raise ConfigMissingError("project is required")
        proj = unquote(self.project) if "%" in self.project else self.project
        proj_enc = quote(proj, safe="", encoding="utf-8")
        return f"{proj_enc}/_apis/{endpoint}"

    def _params(self, **extra: str) -> dict[str, str]:
        params = {"api-version": self.api_version}
        params.update({k: v for k, v in extra.items() if v})
        return params

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        payload: Any = None,
        content_type: str = "",
        cancel: Optional[CancelToken] = None,
        base_url: Optional[str] = None,
    ) -> TransportResponse:
        url = join_url(base_url or self.base_url, path)
        body = _dump(payload) if payload is not None else None
        if body is not None and not content_type:
            content_type = JSON_CONTENT_TYPE
        return self.transport.request(
            method, url, params=params or self._params(), body=body, content_type=content_type, cancel=cancel
        )

    # -- consultas -------------------------------------------------------------------------

    def wiql(self, query: str, top: int = 0, cancel: Optional[CancelToken] = None) -> QueryResult:
        """Executa uma consulta WIQL. Retorna só referências (ids/links), não os campos."""
        params = self._params(**{"$top": str(top) if top > 0 else ""})
        r = self._request("POST", self._project_path("wit/wiql"), params=params, payload={"query": query}, cancel=cancel)
        return _decode(_query_result, _json_body(r, "wiql"), "wiql")

    def get_work_item(
        self,
        work_item_id: int,
        fields: Optional[Sequence[str]] = None,
        expand: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> WorkItem:
        """Obtém um work item por ID (fields restringe os campos; expand: None, Relations, All)."""
        params = self._params(fields=",".join(fields or []), **{"$expand": expand})
        r = self._request("GET", self._project_path(f"wit/workitems/{work_item_id}"), params=params, cancel=cancel)
        return _decode(_work_item, _json_body(r, "work item"), "work item")

    def get_work_items_batch(
        self,
        ids: Sequence[int],
        fields: Optional[Sequence[str]] = None,
        expand: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> list[WorkItem]:
        """
        Obtém vários work items em uma chamada (máx. 200 IDs, limite do servidor).
        A resposta pode vir como lista ou como {"value": [...]}; a ordem não é garantida.
        """
        payload: dict[str, Any] = {"ids": list(ids)}
        if fields:
            payload["fields"] = list(fields)
        if expand:
            payload["$expand"] = expand
        r = self._request("POST", self._project_path("wit/workitemsbatch"), payload=payload, cancel=cancel)
        data = _json_body(r, "batch")
        if isinstance(data, dict):
            data = data.get("value") or []
        return _decode(_work_item_list, data, "batch")

    def list_work_item_types(self, cancel: Optional[CancelToken] = None) -> list[WorkItemType]:
        r = self._request("GET", self._project_path("wit/workitemtypes"), cancel=cancel)
        data = _json_body(r, "work item types")
        if not isinstance(data, dict):
            raise DecodeError("unexpected work item types response shape")
        return _decode(_work_item_type_list, data.get("value") or [], "work item types")

    # -- escrita -----------------------------------------------------------------------------

    def update_work_item(
        self, work_item_id: int, patch: Sequence[PatchOperation], cancel: Optional[CancelToken] = None
    ) -> WorkItem:
        r = self._request(
            "PATCH",
            self._project_path(f"wit/workitems/{work_item_id}"),
            payload=_patch_payload(patch),
            content_type=JSON_PATCH_CONTENT_TYPE,
            cancel=cancel,
        )
        return _decode(_work_item, _json_body(r, "update"), "update")

    def create_work_item(
        self, work_item_type: str, patch: Sequence[PatchOperation], cancel: Optional[CancelToken] = None
    ) -> WorkItem:
        """Cria um work item do tipo informado (nome do tipo, ex.: "Bug"; ver list_work_item_types)."""
        type_enc = quote(work_item_type, safe="", encoding="utf-8")
        r = self._request(
            "POST",
            self._project_path(f"wit/workitems/${type_enc}"),
            payload=_patch_payload(patch),
            content_type=JSON_PATCH_CONTENT_TYPE,
            cancel=cancel,
        )
        return _decode(_work_item, _json_body(r, "create"), "create")

    # -- identidade --------------------------------------------------------------------------

    def profile_base_url(self) -> str:
        """Host do serviço de perfil: fixo para domínios de nuvem, senão a URL base configurada."""
        host = (urlsplit(self.base_url).hostname or "").lower()
        if any(host == s or host.endswith("." + s) for s in CLOUD_HOST_SUFFIXES):
            return CLOUD_PROFILE_BASE_URL
        return self.base_url

    def profile_me(self, cancel: Optional[CancelToken] = None) -> Profile:
        r = self._request("GET", "_apis/profile/profiles/me", base_url=self.profile_base_url(), cancel=cancel)
        return _decode(_profile, _json_body(r, "profile"), "profile")

    def whoami_from_headers(self, cancel: Optional[CancelToken] = None) -> HeaderIdentity:
        """Identidade do dono do PAT a partir do header X-VSS-UserData ("id:uniqueName") de uma chamada qualquer."""
        r = self._request("GET", self._project_path("wit/workitemtypes"), cancel=cancel)
        raw = r.headers.get(USER_DATA_HEADER) or ""
        if not raw:
            raise WhoamiUnavailableError(f"{USER_DATA_HEADER} header missing")
        return HeaderIdentity.parse(raw)

    def resolve_identity_by_id(self, identity_id: str, cancel: Optional[CancelToken] = None) -> Identity:
        if not identity_id:
            raise InvalidArgsError("identity id is required")
        params = self._params(identityIds=identity_id)
        r = self._request("GET", "_apis/identities", params=params, cancel=cancel)
        data = _json_body(r, "identities")
        if not isinstance(data, dict):
            raise DecodeError("unexpected identities response shape")
        identities = _decode(_identity_list, data.get("value") or [], "identities")
        if not identities:
            raise IdentityNotFoundError("identity not found", details=identity_id)
        return identities[0]

    def work_item_url(self, work_item_id: int) -> str:
        """URL de API do work item, usada como alvo de relações."""
        return join_url(self.base_url, f"_apis/wit/workItems/{work_item_id}")

    def close(self) -> None:
        self.transport.close()
