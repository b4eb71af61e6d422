"""Cliente de linha de comando para work items do TFS / Azure DevOps Server."""

__version__ = "0.1.0"
