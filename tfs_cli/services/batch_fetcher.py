"""Busca de work items em lotes de até 200 IDs, preservando a ordem pedida."""
import logging
from collections.abc import Iterator, Sequence
from typing import Optional

from tfs_cli.errors import InvalidArgsError
from tfs_cli.models.devops_models import WorkItem
from tfs_cli.services.devops_client import AzureDevOpsClient
from tfs_cli.services.transport import CancelToken

logger = logging.getLogger(__name__)

# Limite do servidor para workitemsbatch
MAX_BATCH_SIZE = 200


def dedupe_ids(ids: Sequence[int]) -> list[int]:
    """Remove repetidos mantendo a primeira ocorrência."""
    seen: set[int] = set()
    out: list[int] = []
    for wi_id in ids:
        if wi_id not in seen:
            seen.add(wi_id)
            out.append(wi_id)
    return out


def chunked(ids: Sequence[int], size: int) -> Iterator[list[int]]:
    for i in range(0, len(ids), size):
        yield list(ids[i : i + size])


def order_by_ids(ids: Sequence[int], items: Sequence[WorkItem]) -> list[WorkItem]:
    """Reordena `items` na ordem de `ids`. IDs sem item na resposta são omitidos (não é erro)."""
    by_id = {item.id: item for item in items}
    return [by_id[wi_id] for wi_id in ids if wi_id in by_id]


class BatchFetcher:
    """Divide a lista de IDs em lotes sequenciais e junta o resultado na ordem original."""

    def __init__(self, client: AzureDevOpsClient, batch_size: int = MAX_BATCH_SIZE) -> None:
        if not 0 < batch_size <= MAX_BATCH_SIZE:
            raise InvalidArgsError(f"batch size must be between 1 and {MAX_BATCH_SIZE}", details=batch_size)
        self.client = client
        self.batch_size = batch_size

    def fetch(
        self,
        ids: Sequence[int],
        fields: Optional[Sequence[str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> list[WorkItem]:
        """
        Busca os work items de `ids` (repetidos colapsados na primeira posição).
        Lotes são processados em sequência; a falha de um lote aborta tudo, sem resultado parcial.
        """
        unique = dedupe_ids(ids)
        invalid = [wi_id for wi_id in unique if wi_id <= 0]
        if invalid:
            raise InvalidArgsError("work item ids must be positive integers", details=invalid)
        if not unique:
            return []
        results: list[WorkItem] = []
        for n, chunk in enumerate(chunked(unique, self.batch_size), start=1):
            logger.debug("Lote %s: %s work item(s)", n, len(chunk))
            items = self.client.get_work_items_batch(chunk, fields, cancel=cancel)
            ordered = order_by_ids(chunk, items)
            if len(ordered) < len(chunk):
                logger.debug("Lote %s: %s ID(s) sem retorno do servidor", n, len(chunk) - len(ordered))
            results.extend(ordered)
        return results
