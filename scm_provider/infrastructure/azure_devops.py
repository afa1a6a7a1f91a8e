import aiohttp
import logging
from typing import List, Optional
from urllib.parse import quote

from scm_provider.domain.exceptions import ConfigurationError, ScmApiError
from scm_provider.domain.models import Repository
from scm_provider.domain.provider import ScmProviderService
from scm_provider.infrastructure.acl import AzureDevOpsTranslator, validate_clone_protocol
from scm_provider.infrastructure.http_client import ScmHttpClient

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://dev.azure.com"
API_VERSION = "7.0"
ITEM_NOT_FOUND_TYPE_KEY = "GitItemNotFoundException"


class AzureDevOpsProvider(ScmProviderService):
    """
    Azure DevOps Services (or Server, via api_url) provider bound to one organization
    and, optionally, one team project.

    repository_id is the repository GUID string returned by the repositories endpoint;
    follow-up calls address repositories by that GUID.
    """

    def __init__(
        self,
        token: str,
        organization: str,
        project: str = "",
        api_url: Optional[str] = None,
        all_branches: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not token:
            raise ConfigurationError("No access token provided")
        if not organization:
            raise ConfigurationError("No Azure DevOps organization provided")

        self.organization = organization
        self.project = project
        self.all_branches = all_branches
        base_url = f"{(api_url or DEFAULT_API_URL).rstrip('/')}/{quote(organization, safe='')}"
        # Personal access tokens go in the password slot of basic auth
        self.client = ScmHttpClient(base_url, auth=aiohttp.BasicAuth("", token), session=session)

    def _git_path(self, suffix: str) -> str:
        if self.project:
            return f"{quote(self.project, safe='')}/_apis/git/{suffix}"
        return f"_apis/git/{suffix}"

    async def list_repos(self, clone_protocol: str = "") -> List[Repository]:
        validate_clone_protocol("Azure DevOps", clone_protocol)
        raw_repos = await self.client.get_paginated(
            self._git_path("repositories"),
            params={"api-version": API_VERSION},
            items_key="value",
        )
        repos = [
            AzureDevOpsTranslator.to_domain(raw_repo, self.organization, clone_protocol)
            for raw_repo in raw_repos
        ]
        logger.info(f"Azure DevOps {self.organization}/{self.project}: {len(repos)} repositories.")
        return repos

    async def get_branches(self, repo: Repository) -> List[Repository]:
        path = self._git_path(f"repositories/{quote(str(repo.repository_id), safe='')}/stats/branches")

        if not self.all_branches:
            if not repo.branch:
                return []
            raw_branch = await self.client.get_json(path, params={"name": repo.branch, "api-version": API_VERSION})
            return [AzureDevOpsTranslator.to_branch(repo, raw_branch)]

        raw_branches = await self.client.get_paginated(path, params={"api-version": API_VERSION}, items_key="value")
        return [AzureDevOpsTranslator.to_branch(repo, raw_branch) for raw_branch in raw_branches]

    async def _lookup_path(self, repo: Repository, path: str) -> bool:
        await self.client.get_json(
            self._git_path(f"repositories/{quote(str(repo.repository_id), safe='')}/items"),
            params={
                "path": f"/{path}",
                "versionDescriptor.version": repo.branch,
                "versionDescriptor.versionType": "branch",
                "$format": "json",
                "api-version": API_VERSION,
            },
        )
        return True

    def is_path_not_found(self, error: ScmApiError) -> bool:
        # A missing repository or an unresolvable branch carry other type keys and stay errors
        return error.payload.get("typeKey") == ITEM_NOT_FOUND_TYPE_KEY

    async def close(self) -> None:
        await self.client.close()
