import aiohttp
import logging
from typing import List, Optional
from urllib.parse import quote

from scm_provider.domain.exceptions import ConfigurationError, NotFoundError, ScmApiError
from scm_provider.domain.models import Repository
from scm_provider.domain.provider import ScmProviderService
from scm_provider.infrastructure.acl import BitbucketCloudTranslator, validate_clone_protocol
from scm_provider.infrastructure.http_client import ScmHttpClient

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.bitbucket.org/2.0"
PAGE_SIZE = 100


class BitbucketCloudProvider(ScmProviderService):
    """
    Bitbucket Cloud provider bound to one workspace (organization).
    Authenticates with a username and app password. repository is the slug and
    repository_id the braced uuid; follow-up calls address repositories by slug.
    """

    def __init__(
        self,
        username: str,
        token: str,
        organization: str,
        api_url: Optional[str] = None,
        all_branches: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not username or not token:
            raise ConfigurationError("Bitbucket Cloud needs both a username and an app password")
        if not organization:
            raise ConfigurationError("No Bitbucket Cloud workspace provided")

        self.organization = organization
        self.all_branches = all_branches
        self.client = ScmHttpClient(
            api_url or DEFAULT_API_URL,
            auth=aiohttp.BasicAuth(username, token),
            session=session,
        )

    @staticmethod
    def _repo_path(repo: Repository) -> str:
        return f"repositories/{quote(repo.organization, safe='')}/{quote(repo.repository, safe='')}"

    async def list_repos(self, clone_protocol: str = "") -> List[Repository]:
        validate_clone_protocol("Bitbucket Cloud", clone_protocol)
        raw_repos = await self.client.get_paginated(
            f"repositories/{quote(self.organization, safe='')}",
            params={"pagelen": PAGE_SIZE},
            items_key="values",
        )
        repos = [
            BitbucketCloudTranslator.to_domain(raw_repo, self.organization, clone_protocol)
            for raw_repo in raw_repos
        ]
        logger.info(f"Bitbucket Cloud {self.organization}: {len(repos)} repositories.")
        return repos

    async def get_branches(self, repo: Repository) -> List[Repository]:
        branches_path = f"{self._repo_path(repo)}/refs/branches"

        if not self.all_branches:
            if not repo.branch:
                return []
            raw_branch = await self.client.get_json(f"{branches_path}/{quote(repo.branch, safe='')}")
            return [BitbucketCloudTranslator.to_branch(repo, raw_branch)]

        raw_branches = await self.client.get_paginated(branches_path, params={"pagelen": PAGE_SIZE}, items_key="values")
        return [BitbucketCloudTranslator.to_branch(repo, raw_branch) for raw_branch in raw_branches]

    async def _lookup_path(self, repo: Repository, path: str) -> bool:
        # Branch names may contain slashes, which the src endpoint cannot tell apart from the path
        node = repo.sha or repo.branch
        await self.client.get_json(
            f"{self._repo_path(repo)}/src/{quote(node, safe='')}/{quote(path)}",
            params={"format": "meta"},
        )
        return True

    def is_path_not_found(self, error: ScmApiError) -> bool:
        return isinstance(error, NotFoundError)

    async def _confirm_ref(self, repo: Repository) -> None:
        if repo.sha:
            await self.client.get_json(f"{self._repo_path(repo)}/commit/{quote(repo.sha, safe='')}")
        else:
            await self.client.get_json(f"{self._repo_path(repo)}/refs/branches/{quote(repo.branch, safe='')}")

    async def close(self) -> None:
        await self.client.close()
