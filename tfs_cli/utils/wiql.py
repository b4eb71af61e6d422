"""Montagem de consultas WIQL (busca por texto e "meus itens"). Apenas texto, nada é executado aqui."""
from collections.abc import Sequence

from tfs_cli.config import DEFAULT_MY_STATES

DEFAULT_STATES = tuple(s for s in DEFAULT_MY_STATES.split(",") if s)

_SELECT = "SELECT [System.Id] FROM WorkItems WHERE "
_ORDER_BY = " ORDER BY [System.ChangedDate] DESC"


def escape_wiql(value: str) -> str:
    """Dobra aspas simples para uso dentro de literal WIQL."""
    return value.replace("'", "''")


def join_wiql_values(values: Sequence[str]) -> str:
    """Lista de literais para IN (...): aparados, vazios descartados, escapados."""
    return ", ".join(f"'{escape_wiql(v.strip())}'" for v in values if v.strip())


def search_query(text: str) -> str:
    escaped = escape_wiql(text)
    return (
        f"{_SELECT}([System.Title] CONTAINS '{escaped}' OR [System.Description] CONTAINS '{escaped}')"
        f"{_ORDER_BY}"
    )


def my_items_query(
    type_filter: str = "",
    all_types: bool = True,
    exclude_state: str = "",
    all_states: bool = False,
    default_states: Sequence[str] = DEFAULT_STATES,
) -> str:
    """
    Itens atribuídos ao usuário atual no projeto. Ordem das cláusulas é fixa:
    projeto, atribuição, tipo (opcional), estado (<> exclude_state ou IN default_states).
    """
    conditions = ["[System.TeamProject] = @Project", "[System.AssignedTo] = @Me"]
    if not all_types and type_filter.strip():
        conditions.append(f"[System.WorkItemType] = '{escape_wiql(type_filter)}'")
    if not all_states:
        if exclude_state.strip():
            conditions.append(f"[System.State] <> '{escape_wiql(exclude_state)}'")
        else:
            states = join_wiql_values(default_states)
            if states:
                conditions.append(f"[System.State] IN ({states})")
    return _SELECT + " AND ".join(conditions) + _ORDER_BY
