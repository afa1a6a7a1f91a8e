import logging
from abc import ABC, abstractmethod
from typing import List

from scm_provider.domain.exceptions import ScmApiError
from scm_provider.domain.models import Repository

logger = logging.getLogger(__name__)


class ScmProviderService(ABC):
    """
    Discovery contract shared by every hosting backend.

    An instance is bound to one organization (and optionally a project) and one
    credential. It keeps no mutable state between calls, so the same instance can
    serve concurrent list_repos/get_branches/repo_has_path calls.
    """

    organization: str

    @abstractmethod
    async def list_repos(self, clone_protocol: str = "") -> List[Repository]:
        """
        Enumerates every repository visible to the credential.

        Args:
            clone_protocol (str): "https", "ssh" or "" for the backend default.

        Returns:
            List[Repository]: Repository-level entries carrying the default branch.
        """

    @abstractmethod
    async def get_branches(self, repo: Repository) -> List[Repository]:
        """Expands a repository returned by list_repos into one entry per branch."""

    @abstractmethod
    async def _lookup_path(self, repo: Repository, path: str) -> bool:
        """
        Looks up path at the tip of repo.branch. Returns the existence answer when the
        backend responds successfully, raises ScmApiError when the lookup fails.
        """

    @abstractmethod
    def is_path_not_found(self, error: ScmApiError) -> bool:
        """Tells whether error is this backend's canonical 'item not found' answer to a path lookup."""

    async def _confirm_ref(self, repo: Repository) -> None:
        """
        Raises ScmApiError when repo or repo.branch no longer exists. Called after a path
        lookup was classified as not found, for backends whose content API answers a
        missing repository or branch with the same 404 as a missing path.
        """

    async def repo_has_path(self, repo: Repository, path: str) -> bool:
        """
        Reports whether path (file or directory, relative to the repository root)
        exists at the tip of repo.branch.

        A backend 'not found' answer is a valid False; every other failure propagates.
        """
        normalized = path.strip("/")
        try:
            exists = await self._lookup_path(repo, normalized)
        except ScmApiError as e:
            if self.is_path_not_found(e):
                await self._confirm_ref(repo)
                logger.debug(f"{repo.organization}/{repo.repository}@{repo.branch}: '{normalized}' not found.")
                return False
            raise
        return exists

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "ScmProviderService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.close()
        return False
