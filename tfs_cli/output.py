"""Apresentação: normalização de work items, tabelas, JSON e envelope de erro."""
import json
from collections.abc import Sequence
from typing import Any, Optional

from tfs_cli.errors import TfsError
from tfs_cli.models.devops_models import WorkItem, WorkItemType

WORK_ITEM_COLUMNS = ("ID", "TYPE", "STATE", "TITLE", "ASSIGNED")
TYPE_COLUMNS = ("NAME", "REFERENCE", "DISABLED")


def identity_display(value: Any) -> Optional[str]:
    """System.AssignedTo como texto: "Nome<uniqueName>", ou o que existir."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        display = value.get("displayName")
        unique = value.get("uniqueName")
        if isinstance(display, str) and display:
            if isinstance(unique, str) and unique:
                return f"{display}<{unique}>"
            return display
        if isinstance(unique, str) and unique:
            return unique
    return None


def normalize_work_item(item: WorkItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "type": item.field_str("System.WorkItemType"),
        "state": item.field_str("System.State"),
        "title": item.field_str("System.Title"),
        "assignedTo": identity_display(item.fields.get("System.AssignedTo")),
        "areaPath": item.field_str("System.AreaPath"),
        "iterationPath": item.field_str("System.IterationPath"),
        "tags": item.field_str("System.Tags"),
        "url": item.url or None,
        "fields": item.fields,
    }


def raw_work_item(item: WorkItem) -> dict[str, Any]:
    return item.model_dump(mode="json", by_alias=True, exclude_none=True)


def to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def render_table(columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """Colunas alinhadas à esquerda, separadas por dois espaços."""
    cells = [list(columns)] + [["" if c is None else str(c) for c in row] for row in rows]
    widths = [max(len(r[i]) for r in cells) for i in range(len(columns))]
    lines = []
    for row in cells:
        padded = [cell.ljust(widths[i]) for i, cell in enumerate(row[:-1])] + [row[-1]]
        lines.append("  ".join(padded).rstrip())
    return "\n".join(lines)


def work_items_table(items: Sequence[dict[str, Any]]) -> str:
    rows = [(i["id"], i["type"], i["state"], i["title"], i["assignedTo"]) for i in items]
    return render_table(WORK_ITEM_COLUMNS, rows)


def types_table(types: Sequence[WorkItemType]) -> str:
    rows = [(t.name, t.reference_name, "yes" if t.is_disabled else "no") for t in types]
    return render_table(TYPE_COLUMNS, rows)


def types_payload(types: Sequence[WorkItemType]) -> list[dict[str, Any]]:
    return [{"name": t.name, "referenceName": t.reference_name, "isDisabled": t.is_disabled} for t in types]


def _v(value: Optional[Any]) -> str:
    return "" if value is None else str(value)


def work_item_text(item: dict[str, Any]) -> str:
    return "\n".join(
        [
            f"ID: {item['id']}",
            f"Type: {_v(item['type'])}",
            f"State: {_v(item['state'])}",
            f"Title: {_v(item['title'])}",
            f"AssignedTo: {_v(item['assignedTo'])}",
            f"AreaPath: {_v(item['areaPath'])}",
            f"IterationPath: {_v(item['iterationPath'])}",
            f"Tags: {_v(item['tags'])}",
            f"URL: {_v(item['url'])}",
        ]
    )


def work_item_details_text(item: dict[str, Any], children: Sequence[dict[str, Any]]) -> str:
    """Detalhe do comando show: cabeçalho, descrição, último comentário e filhos."""
    fields = item["fields"]
    lines = [
        f"ID: {item['id']}",
        f"Title: {_v(item['title'])}",
        f"Type: {_v(item['type'])}",
        f"State: {_v(item['state'])}",
        f"AssignedTo: {_v(item['assignedTo'])}",
        f"Tags: {_v(item['tags'])}",
        "",
    ]
    description = fields.get("System.Description")
    if isinstance(description, str) and description:
        lines += ["Description:", description, ""]
    history = fields.get("System.History")
    if isinstance(history, str) and history:
        lines += ["Comment (latest):", history, ""]
    if not children:
        lines.append("Children: none")
    else:
        lines += ["Children:", work_items_table(children)]
    return "\n".join(lines)


def error_envelope(err: BaseException) -> dict[str, Any]:
    if isinstance(err, TfsError):
        return err.to_envelope()
    return {"error": {"code": "internal_error", "message": str(err)}}


def render_error(err: BaseException, json_mode: bool) -> str:
    if json_mode:
        return to_json(error_envelope(err))
    return str(err)
