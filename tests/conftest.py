"""Configuração pytest e fixtures."""
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from requests.structures import CaseInsensitiveDict

# Garante que a raiz do projeto está no path
_root = Path(__file__).resolve().parent.parent
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: testes que exigem TFS_BASE_URL, TFS_PROJECT e TFS_PAT")


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)


def _make_response(status_code=200, body=b"", headers=None, reason="OK"):
    r = MagicMock()
    r.status_code = status_code
    r.content = body if isinstance(body, bytes) else body.encode("utf-8")
    r.headers = CaseInsensitiveDict(headers or {})
    r.reason = reason
    return r


@pytest.fixture
def make_response():
    """Fábrica de respostas falsas de requests com o mínimo usado pelo Transport."""
    return _make_response


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Sem variáveis TFS_* do ambiente real e com o arquivo de config em diretório temporário."""
    for name in ("TFS_BASE_URL", "TFS_PROJECT", "TFS_PAT", "TFS_LOG_LEVEL", "TFS_MY_DEFAULT_STATES", "TFS_TIMEOUT_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.chdir(tmp_path)
    return tmp_path
