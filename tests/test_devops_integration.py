"""
Testes de integração: leitura em um servidor TFS / Azure DevOps real.
Requer TFS_BASE_URL, TFS_PROJECT e TFS_PAT no ambiente. Execute com: pytest -m integration
Não alteramos dados no servidor (apenas leitura) para evitar efeitos colaterais.
"""
import os

import pytest

# Lido na importação: o fixture autouse do conftest limpa as variáveis TFS_* de cada teste
_ENV = {name: (os.environ.get(name) or "").strip() for name in ("TFS_BASE_URL", "TFS_PROJECT", "TFS_PAT")}


@pytest.mark.integration
class TestTfsIntegration:
    """Testes de integração com o servidor (somente leitura)."""

    @pytest.fixture
    def client(self):
        if not all(_ENV.values()):
            pytest.skip("TFS_BASE_URL, TFS_PROJECT e TFS_PAT não configurados")
        from tfs_cli.config import ClientConfig, normalize_base_url
        from tfs_cli.services.devops_client import AzureDevOpsClient

        base_url, _ = normalize_base_url(_ENV["TFS_BASE_URL"], _ENV["TFS_PROJECT"])
        client = AzureDevOpsClient(ClientConfig(base_url=base_url, project=_ENV["TFS_PROJECT"], pat=_ENV["TFS_PAT"]))
        yield client
        client.close()

    def test_list_work_item_types(self, client):
        types = client.list_work_item_types()
        assert isinstance(types, list)
        assert all(t.name for t in types)

    def test_wiql_and_batch(self, client):
        from tfs_cli.services.batch_fetcher import BatchFetcher
        from tfs_cli.models.devops_models import LIST_FIELDS

        result = client.wiql("SELECT [System.Id] FROM WorkItems ORDER BY [System.ChangedDate] DESC", top=5)
        ids = result.ids()
        items = BatchFetcher(client).fetch(ids, LIST_FIELDS)
        # Pode ser 0 ou mais; a ordem segue a consulta
        got = [wi.id for wi in items]
        assert got == [i for i in ids if i in got]

    def test_whoami(self, client):
        from tfs_cli.services.identity_resolver import IdentityResolver

        resolution = IdentityResolver(client).whoami()
        assert resolution.source in ("profile", "headers")
        assert resolution.assigned_to
