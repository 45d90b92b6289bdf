"""Collaborator interfaces following Black Box Design principles."""
from typing import Dict, List, Protocol


class SecretSource(Protocol):
    """Resolves the secret bundle handed to authenticated clients."""

    def __call__(self) -> Dict[str, str]:
        ...


class RepositoryCollaborator(Protocol):
    """Protocol for the external repository metadata service."""

    @property
    def is_configured(self) -> bool:
        ...

    async def update_repo(self, repo_url: str, grpc_endpoint: str) -> None:
        """
        Point a repository at a gRPC endpoint.

        Raises:
            CollaboratorError: On any failure
        """
        ...

    async def list_repos(self) -> List[str]:
        """
        List known repository URLs.

        Raises:
            CollaboratorError: On any failure
        """
        ...
