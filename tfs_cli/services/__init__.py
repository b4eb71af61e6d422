"""Serviços: transporte HTTP, cliente da API, busca em lotes e resolução de identidade."""
