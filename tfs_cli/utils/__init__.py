"""Utilitários sem I/O: montagem de WIQL, documentos JSON Patch e trace HTTP."""
