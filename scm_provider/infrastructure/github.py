import aiohttp
import logging
from typing import List, Optional
from urllib.parse import quote

from scm_provider.domain.exceptions import ConfigurationError, NotFoundError, ScmApiError
from scm_provider.domain.models import Repository
from scm_provider.domain.provider import ScmProviderService
from scm_provider.infrastructure.acl import GitHubTranslator, validate_clone_protocol
from scm_provider.infrastructure.http_client import ScmHttpClient

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
PAGE_SIZE = 100


class GitHubProvider(ScmProviderService):
    """
    GitHub (or GitHub Enterprise, via api_url) provider bound to one organization.
    repository_id is the numeric repository id; follow-up calls address repositories
    by owner and name.
    """

    def __init__(
        self,
        token: str,
        organization: str,
        api_url: Optional[str] = None,
        all_branches: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not token:
            raise ConfigurationError("No GitHub token provided")
        if not organization:
            raise ConfigurationError("No GitHub organization provided")

        self.organization = organization
        self.all_branches = all_branches
        self.client = ScmHttpClient(
            api_url or DEFAULT_API_URL,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            session=session,
        )

    @staticmethod
    def _repo_path(repo: Repository) -> str:
        return f"repos/{quote(repo.organization, safe='')}/{quote(repo.repository, safe='')}"

    async def list_repos(self, clone_protocol: str = "") -> List[Repository]:
        validate_clone_protocol("GitHub", clone_protocol)
        raw_repos = await self.client.get_paginated(
            f"orgs/{quote(self.organization, safe='')}/repos",
            params={"per_page": PAGE_SIZE},
        )
        repos = [GitHubTranslator.to_domain(raw_repo, clone_protocol) for raw_repo in raw_repos]
        logger.info(f"GitHub {self.organization}: {len(repos)} repositories.")
        return repos

    async def get_branches(self, repo: Repository) -> List[Repository]:
        if not self.all_branches:
            if not repo.branch:
                return []
            raw_branch = await self.client.get_json(f"{self._repo_path(repo)}/branches/{quote(repo.branch, safe='')}")
            return [GitHubTranslator.to_branch(repo, raw_branch)]

        raw_branches = await self.client.get_paginated(
            f"{self._repo_path(repo)}/branches",
            params={"per_page": PAGE_SIZE},
        )
        return [GitHubTranslator.to_branch(repo, raw_branch) for raw_branch in raw_branches]

    async def _lookup_path(self, repo: Repository, path: str) -> bool:
        await self.client.get_json(
            f"{self._repo_path(repo)}/contents/{quote(path)}",
            params={"ref": repo.branch},
        )
        return True

    def is_path_not_found(self, error: ScmApiError) -> bool:
        # The contents API answers a missing path with a bare 404
        return isinstance(error, NotFoundError)

    async def _confirm_ref(self, repo: Repository) -> None:
        await self.client.get_json(f"{self._repo_path(repo)}/branches/{quote(repo.branch, safe='')}")

    async def close(self) -> None:
        await self.client.close()
