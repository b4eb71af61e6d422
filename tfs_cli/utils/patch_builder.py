"""Documentos JSON Patch para criação e atualização de work items."""
from collections.abc import Callable, Sequence
from typing import Optional

from pydantic import JsonValue

from tfs_cli.errors import AssignedToRequiredError, InvalidArgsError
from tfs_cli.models.devops_models import (
    ASSIGNED_TO_FIELD,
    HISTORY_FIELD,
    PARENT_RELATION,
    TITLE_FIELD,
    PatchOperation,
)


def parse_assignment(raw: str) -> tuple[str, str]:
    """Converte "Campo=Valor" em (campo, valor), ambos aparados. Divide no primeiro "="."""
    field, sep, value = raw.partition("=")
    if not sep:
        raise InvalidArgsError("invalid --set format, expected Field=Value", details=raw)
    field = field.strip()
    if not field:
        raise InvalidArgsError("field name is required", details=raw)
    return field, value.strip()


def build_update_patch(sets: Sequence[str], comment: str = "") -> list[PatchOperation]:
    """Um add por atribuição, na ordem recebida; o comentário (System.History) vai sempre por último."""
    patch = []
    for raw in sets:
        field, value = parse_assignment(raw)
        patch.append(PatchOperation.field(field, value))
    if comment:
        patch.append(PatchOperation.field(HISTORY_FIELD, comment))
    return patch


def build_create_patch(
    title: str,
    assigned_to: str,
    sets: Sequence[str],
    resolve_assignee: Callable[[], Optional[JsonValue]],
    parent_id: int = 0,
    parent_url: Optional[Callable[[int], str]] = None,
    parent_rel: str = PARENT_RELATION,
) -> list[PatchOperation]:
    """
    Ordem fixa: título, responsável, relação com o pai (se parent_id > 0), demais atribuições.

    Responsável = primeiro não vazio entre assigned_to, um --set de System.AssignedTo
    (comparação sem diferenciar maiúsculas) e resolve_assignee(), chamado só se necessário.
    Atribuições de System.AssignedTo são consumidas aqui e não se repetem no patch; as demais
    (inclusive System.Title) seguem na ordem recebida, e o servidor aplica a última.
    """
    if not title.strip():
        raise InvalidArgsError("title is required")
    assignee: Optional[JsonValue] = assigned_to.strip() or None
    remaining: list[tuple[str, str]] = []
    for raw in sets:
        field, value = parse_assignment(raw)
        if field.lower() == ASSIGNED_TO_FIELD.lower():
            if assignee is None and value:
                assignee = value
            continue
        remaining.append((field, value))

    if assignee is None:
        assignee = resolve_assignee()
    if assignee is None or assignee == "":
        raise AssignedToRequiredError("assigned-to is required")

    patch = [
        PatchOperation.field(TITLE_FIELD, title),
        PatchOperation.field(ASSIGNED_TO_FIELD, assignee),
    ]
    if parent_id > 0:
        if parent_url is None:
            raise InvalidArgsError("parent URL builder is required when parent id is set")
        patch.append(PatchOperation.relation(parent_rel or PARENT_RELATION, parent_url(parent_id)))
    patch.extend(PatchOperation.field(field, value) for field, value in remaining)
    return patch
