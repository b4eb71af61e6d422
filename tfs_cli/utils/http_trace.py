"""
Trace detalhado de requisições HTTP (--verbose).
Escreve requisição e resposta em um destino fornecido pelo chamador (ex.: stderr):
  > METHOD URL / > Header: valor / > body: ...
  < STATUS / < Header: valor / < body: ...
O header Authorization nunca é escrito. Corpos são truncados em 2048 bytes.
Falhas de escrita só geram warning no logger: o trace nunca altera o fluxo da requisição.
"""
import logging
from collections.abc import Mapping
from typing import Any, Optional

logger = logging.getLogger(__name__)

BODY_LIMIT = 2048
REDACTED_HEADERS = frozenset({"authorization"})


def truncate_body(body: bytes | str | None, limit: int = BODY_LIMIT) -> str:
    """Corpo como texto, cortado em `limit` bytes com sufixo "..."."""
    if not body:
        return ""
    raw = body.encode("utf-8") if isinstance(body, str) else body
    if len(raw) <= limit:
        return raw.decode("utf-8", errors="replace")
    return raw[:limit].decode("utf-8", errors="replace") + "..."


class HttpTraceWriter:
    """Escreve o trace em `sink` (qualquer objeto com write(str)). Sem sink, não faz nada."""

    def __init__(self, sink: Optional[Any] = None) -> None:
        self.sink = sink

    def _write(self, lines: list[str]) -> None:
        if self.sink is None:
            return
        try:
            self.sink.write("".join(line + "\n" for line in lines))
            flush = getattr(self.sink, "flush", None)
            if callable(flush):
                flush()
        except (OSError, ValueError) as e:
            logger.warning("Não foi possível escrever trace HTTP: %s", e)

    def request(self, method: str, url: str, headers: Mapping[str, str], body: bytes | None) -> None:
        if self.sink is None:
            return
        lines = [f"> {method} {url}"]
        for key, value in headers.items():
            if key.lower() in REDACTED_HEADERS:
                continue
            lines.append(f"> {key}: {value}")
        if body:
            lines.append(f"> body: {truncate_body(body)}")
        self._write(lines)

    def response(self, status_code: int, reason: str, headers: Mapping[str, str], body: bytes | None) -> None:
        if self.sink is None:
            return
        lines = [f"< {status_code} {reason}".rstrip()]
        for key, value in headers.items():
            lines.append(f"< {key}: {value}")
        if body:
            lines.append(f"< body: {truncate_body(body)}")
        self._write(lines)
