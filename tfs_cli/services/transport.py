"""
Camada HTTP: uma requisição com retry/backoff por status e classificação do resultado.

Política de retry (intencionalmente assimétrica):
- Status 429 e 500-599: até 4 novas tentativas (5 no total).
  Espera = Retry-After (segundos inteiros) se presente; senão backoff 0.5s, 1s, 2s, 4s... limitado a 5s, sem jitter.
- Outros não-2xx: erro imediato (HTTPStatusError com status e corpo bruto).
- Falhas de rede (conexão recusada, timeout): propagam imediatamente como TransportError, sem retry.
"""
import base64
import logging
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any, NamedTuple, Optional
from urllib.parse import urlencode

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tfs_cli.config import DEFAULT_TIMEOUT_SECONDS
from tfs_cli.errors import CancelledError, HTTPRetryError, HTTPStatusError, TransportError
from tfs_cli.utils.http_trace import HttpTraceWriter

logger = logging.getLogger(__name__)

MAX_RETRIES = 4
INITIAL_BACKOFF_SECONDS = 0.5
MAX_BACKOFF_SECONDS = 5.0

JSON_CONTENT_TYPE = "application/json"
JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code <= 599


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Retry-After em segundos inteiros positivos; qualquer outro formato (inclusive data HTTP) é ignorado."""
    if value is None:
        return None
    try:
        seconds = int(str(value).strip())
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def next_backoff(current: float) -> float:
    return min(current * 2, MAX_BACKOFF_SECONDS)


def basic_auth_token(pat: str) -> str:
    """Basic auth com usuário vazio e o PAT como senha."""
    return base64.b64encode(f":{pat}".encode("utf-8")).decode("utf-8")


class CancelToken:
    """
    Handle de cancelamento/prazo repassado a todas as chamadas.
    Verificado antes de cada tentativa, após cada resposta e durante a espera do backoff.
    Uma requisição já em andamento não é interrompida: o prazo só limita o timeout dela.
    """

    def __init__(self, deadline: Optional[float] = None) -> None:
        self._event = threading.Event()
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError()
        if self.cancelled:
            raise CancelledError("deadline exceeded")

    def wait(self, seconds: float) -> bool:
        """Dorme até `seconds` ou até o cancelamento. Retorna True se cancelado."""
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(max(remaining, 0))
            return True
        return self._event.wait(seconds)


class TransportResponse(NamedTuple):
    status_code: int
    headers: Mapping[str, str]
    body: bytes


class Transport:
    """Executa requisições autenticadas. Não tem conhecimento do domínio."""

    def __init__(
        self,
        pat: str,
        *,
        insecure: bool = False,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        log_sink: Optional[Any] = None,
        max_retries: int = MAX_RETRIES,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.pat = pat
        self.timeout = timeout
        self.max_retries = max_retries
        self.trace = HttpTraceWriter(log_sink)
        self._sleep = sleep
        self.session = session or self._build_session(insecure)

    @staticmethod
    def _build_session(insecure: bool) -> requests.Session:
        session = requests.Session()
        # Sem retry no adapter: falhas de conexão não são retentadas; status é tratado em request()
        retry = Retry(total=0, raise_on_status=False)
        adapter = HTTPAdapter(pool_connections=10, pool_maxsize=20, max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        if insecure:
            session.verify = False
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        return session

    def _headers(self, content_type: str) -> dict[str, str]:
        headers = {"Accept": JSON_CONTENT_TYPE}
        if content_type:
            headers["Content-Type"] = content_type
        headers["Authorization"] = f"Basic {basic_auth_token(self.pat)}"
        return headers

    def _attempt_timeout(self, cancel: Optional[CancelToken]) -> float:
        remaining = cancel.remaining() if cancel is not None else None
        if remaining is None:
            return self.timeout
        return max(min(self.timeout, remaining), 0.001)

    def _wait(self, seconds: float, cancel: Optional[CancelToken]) -> None:
        if cancel is None:
            self._sleep(seconds)
            return
        if cancel.wait(seconds):
            raise CancelledError("cancelled during retry backoff")

    def request(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
        content_type: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> TransportResponse:
        """Executa a requisição; retorna (status, headers, corpo) em 2xx ou levanta TfsError."""
        full_url = f"{url}?{urlencode(params)}" if params else url
        backoff = INITIAL_BACKOFF_SECONDS
        for attempt in range(self.max_retries + 1):
            if cancel is not None:
                cancel.raise_if_cancelled()
            headers = self._headers(content_type)
            self.trace.request(method, full_url, headers, body)
            try:
                r = self.session.request(
                    method=method,
                    url=full_url,
                    data=body,
                    headers=headers,
                    timeout=self._attempt_timeout(cancel),
                )
            except requests.RequestException as e:
                if cancel is not None and cancel.cancelled:
                    raise CancelledError() from e
                raise TransportError(f"{method} {url}: {e}", details=type(e).__name__) from e
            if cancel is not None:
                cancel.raise_if_cancelled()
            content = r.content or b""
            self.trace.response(r.status_code, r.reason or "", r.headers, content)

            if 200 <= r.status_code <= 299:
                return TransportResponse(r.status_code, r.headers, content)

            text = content.decode("utf-8", errors="replace")
            if not is_retryable_status(r.status_code):
                raise HTTPStatusError(r.status_code, text)
            if attempt >= self.max_retries:
                logger.warning("%s %s: status %s após %s tentativas", method, url, r.status_code, attempt + 1)
                raise HTTPRetryError(r.status_code, text)

            wait = parse_retry_after(r.headers.get("Retry-After"))
            if wait is None:
                wait = backoff
                backoff = next_backoff(backoff)
            logger.info(
                "%s %s: status %s, nova tentativa %s/%s em %.1fs",
                method, url, r.status_code, attempt + 1, self.max_retries, wait,
            )
            self._wait(wait, cancel)
        raise HTTPStatusError(0, "request failed")

    def close(self) -> None:
        self.session.close()
