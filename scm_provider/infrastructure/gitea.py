import aiohttp
import logging
from typing import List, Optional
from urllib.parse import quote

from scm_provider.domain.exceptions import ConfigurationError, NotFoundError, ScmApiError
from scm_provider.domain.models import Repository
from scm_provider.domain.provider import ScmProviderService
from scm_provider.infrastructure.acl import GiteaTranslator, validate_clone_protocol
from scm_provider.infrastructure.http_client import ScmHttpClient

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://gitea.com"
PAGE_SIZE = 50


class GiteaProvider(ScmProviderService):
    """Gitea provider bound to one organization. repository_id is the numeric repository id."""

    def __init__(
        self,
        token: str,
        organization: str,
        api_url: Optional[str] = None,
        all_branches: bool = True,
        insecure: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not token:
            raise ConfigurationError("No Gitea token provided")
        if not organization:
            raise ConfigurationError("No Gitea organization provided")

        self.organization = organization
        self.all_branches = all_branches
        self.client = ScmHttpClient(
            f"{(api_url or DEFAULT_API_URL).rstrip('/')}/api/v1",
            headers={"Authorization": f"token {token}"},
            verify_ssl=not insecure,
            session=session,
        )

    @staticmethod
    def _repo_path(repo: Repository) -> str:
        return f"repos/{quote(repo.organization, safe='')}/{quote(repo.repository, safe='')}"

    async def list_repos(self, clone_protocol: str = "") -> List[Repository]:
        validate_clone_protocol("Gitea", clone_protocol)
        raw_repos = await self.client.get_paginated(
            f"orgs/{quote(self.organization, safe='')}/repos",
            params={"limit": PAGE_SIZE},
        )
        repos = [GiteaTranslator.to_domain(raw_repo, clone_protocol) for raw_repo in raw_repos]
        logger.info(f"Gitea {self.organization}: {len(repos)} repositories.")
        return repos

    async def get_branches(self, repo: Repository) -> List[Repository]:
        if not self.all_branches:
            if not repo.branch:
                return []
            raw_branch = await self.client.get_json(f"{self._repo_path(repo)}/branches/{quote(repo.branch, safe='')}")
            return [GiteaTranslator.to_branch(repo, raw_branch)]

        raw_branches = await self.client.get_paginated(f"{self._repo_path(repo)}/branches", params={"limit": PAGE_SIZE})
        return [GiteaTranslator.to_branch(repo, raw_branch) for raw_branch in raw_branches]

    async def _lookup_path(self, repo: Repository, path: str) -> bool:
        # Directories answer with a listing, files with a single entry; both mean the path exists
        await self.client.get_json(f"{self._repo_path(repo)}/contents/{quote(path)}", params={"ref": repo.branch})
        return True

    def is_path_not_found(self, error: ScmApiError) -> bool:
        return isinstance(error, NotFoundError)

    async def _confirm_ref(self, repo: Repository) -> None:
        await self.client.get_json(f"{self._repo_path(repo)}/branches/{quote(repo.branch, safe='')}")

    async def close(self) -> None:
        await self.client.close()
