"""Modelos da API de work items (respostas e documentos JSON Patch)."""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator

FIELDS_PATH_PREFIX = "/fields/"
RELATIONS_APPEND_PATH = "/relations/-"

# Campos de referência usados pela listagem e pelos builders
TITLE_FIELD = "System.Title"
ASSIGNED_TO_FIELD = "System.AssignedTo"
HISTORY_FIELD = "System.History"

LIST_FIELDS = [
    "System.WorkItemType",
    "System.State",
    "System.Title",
    "System.AssignedTo",
    "System.AreaPath",
    "System.IterationPath",
    "System.Tags",
]

SHOW_FIELDS = [
    "System.Title",
    "System.Description",
    "System.AssignedTo",
    "System.Tags",
    "System.WorkItemType",
    "System.State",
    "System.History",
]

PARENT_RELATION = "System.LinkTypes.Hierarchy-Reverse"
CHILD_RELATION = "System.LinkTypes.Hierarchy-Forward"


class _ApiModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class WorkItemReference(_ApiModel):
    id: int = 0
    url: str = ""


class WorkItemLink(_ApiModel):
    """Link retornado por consultas WIQL do tipo árvore/um-salto. source é nulo nas raízes."""

    rel: Optional[str] = None
    source: Optional[WorkItemReference] = None
    target: Optional[WorkItemReference] = None


class WorkItemRelation(_ApiModel):
    """Relação de um work item (presente só com $expand=Relations/All)."""

    rel: str = ""
    url: str = ""
    attributes: dict[str, JsonValue] = Field(default_factory=dict)

    @field_validator("attributes", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return {} if v is None else v


def id_from_url(url: str) -> int:
    """Último segmento numérico da URL (…/workItems/123 -> 123). 0 se não houver."""
    if not url:
        return 0
    last = url.rstrip("/").rsplit("/", 1)[-1]
    try:
        return int(last)
    except ValueError:
        return 0


class WorkItem(_ApiModel):
    """Work item. fields é um mapa livre: nome de referência -> valor JSON."""

    id: int
    rev: Optional[int] = None
    fields: dict[str, JsonValue] = Field(default_factory=dict)
    relations: Optional[list[WorkItemRelation]] = None
    url: str = ""

    @field_validator("fields", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return {} if v is None else v

    def field_str(self, name: str) -> Optional[str]:
        """Valor do campo se for string não vazia."""
        value = self.fields.get(name)
        return value if isinstance(value, str) and value else None

    def relation_ids(self, rel: str = "") -> list[int]:
        """IDs dos itens relacionados (opcionalmente filtrando pelo tipo de relação), sem repetição."""
        ids: list[int] = []
        seen: set[int] = set()
        for relation in self.relations or []:
            if rel and relation.rel != rel:
                continue
            wi_id = id_from_url(relation.url)
            if wi_id <= 0 or wi_id in seen:
                continue
            seen.add(wi_id)
            ids.append(wi_id)
        return ids


class QueryResult(_ApiModel):
    """Resposta WIQL: lista plana (workItems) e/ou links (workItemRelations)."""

    query_type: str = Field(default="", alias="queryType")
    query_result_type: str = Field(default="", alias="queryResultType")
    work_items: list[WorkItemReference] = Field(default_factory=list, alias="workItems")
    work_item_links: list[WorkItemLink] = Field(default_factory=list, alias="workItemRelations")

    @field_validator("work_items", "work_item_links", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return [] if v is None else v

    def ids(self) -> list[int]:
        """IDs na ordem de aparição: workItems primeiro, depois source/target dos links; sem repetição."""
        ids: list[int] = []
        seen: set[int] = set()

        def add(wi_id: int) -> None:
            if wi_id and wi_id not in seen:
                seen.add(wi_id)
                ids.append(wi_id)

        for ref in self.work_items:
            add(ref.id)
        for link in self.work_item_links:
            if link.source is not None:
                add(link.source.id)
            if link.target is not None:
                add(link.target.id)
        return ids


class WorkItemTypeField(_ApiModel):
    name: str = ""
    reference_name: str = Field(default="", alias="referenceName")


class WorkItemType(_ApiModel):
    name: str = ""
    reference_name: str = Field(default="", alias="referenceName")
    description: str = ""
    color: str = ""
    is_disabled: bool = Field(default=False, alias="isDisabled")
    url: str = ""
    fields: list[WorkItemTypeField] = Field(default_factory=list)
    field_instances: list[WorkItemTypeField] = Field(default_factory=list, alias="fieldInstances")

    @field_validator("fields", "field_instances", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return [] if v is None else v


class PatchOperation(_ApiModel):
    """Operação JSON Patch. A ordem da lista é significativa: o servidor aplica na sequência."""

    op: Literal["add"] = "add"
    path: str
    value: JsonValue = None

    @field_validator("path")
    @classmethod
    def _check_path(cls, v: str) -> str:
        if v == RELATIONS_APPEND_PATH:
            return v
        if v.startswith(FIELDS_PATH_PREFIX) and len(v) > len(FIELDS_PATH_PREFIX):
            return v
        raise ValueError(f"path must start with {FIELDS_PATH_PREFIX} or be {RELATIONS_APPEND_PATH}")

    @classmethod
    def field(cls, name: str, value: JsonValue) -> "PatchOperation":
        return cls(path=FIELDS_PATH_PREFIX + name, value=value)

    @classmethod
    def relation(cls, rel: str, url: str) -> "PatchOperation":
        return cls(path=RELATIONS_APPEND_PATH, value={"rel": rel, "url": url})
