"""
Ingestion layer — feeds for the local collaborator tables.

Submodules:
  seed_loader      — partners / analyses JSON files → validated models → SQLite
  directory_client — marketplace companies endpoint → ``Partner`` (httpx)
"""
