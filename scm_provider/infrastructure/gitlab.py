import aiohttp
import logging
import posixpath
from typing import List, Optional
from urllib.parse import quote

from scm_provider.domain.exceptions import ConfigurationError, NotFoundError, ScmApiError
from scm_provider.domain.models import Repository
from scm_provider.domain.provider import ScmProviderService
from scm_provider.infrastructure.acl import GitLabTranslator, validate_clone_protocol
from scm_provider.infrastructure.http_client import ScmHttpClient

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://gitlab.com"
PAGE_SIZE = 100
# GitLab's error key for a path or ref missing from the repository tree.
# A deleted project answers "404 Project Not Found" and stays an error.
TREE_NOT_FOUND = "404 Tree Not Found"


class GitLabProvider(ScmProviderService):
    """
    GitLab provider bound to one group (organization).
    repository_id is the numeric project id; every follow-up call addresses the
    project by that id.
    """

    def __init__(
        self,
        token: str,
        organization: str,
        api_url: Optional[str] = None,
        include_subgroups: bool = False,
        all_branches: bool = True,
        verify_ssl: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not token:
            raise ConfigurationError("No GitLab token provided")
        if not organization:
            raise ConfigurationError("No GitLab group provided")

        self.organization = organization
        self.include_subgroups = include_subgroups
        self.all_branches = all_branches
        self.client = ScmHttpClient(
            f"{(api_url or DEFAULT_API_URL).rstrip('/')}/api/v4",
            headers={"PRIVATE-TOKEN": token},
            verify_ssl=verify_ssl,
            session=session,
        )

    async def list_repos(self, clone_protocol: str = "") -> List[Repository]:
        validate_clone_protocol("GitLab", clone_protocol)
        raw_projects = await self.client.get_paginated(
            f"groups/{quote(self.organization, safe='')}/projects",
            params={
                "per_page": PAGE_SIZE,
                "include_subgroups": str(self.include_subgroups).lower(),
                "with_shared": "false",
            },
        )
        repos = [GitLabTranslator.to_domain(raw_project, clone_protocol) for raw_project in raw_projects]
        logger.info(f"GitLab {self.organization}: {len(repos)} projects.")
        return repos

    async def get_branches(self, repo: Repository) -> List[Repository]:
        branches_path = f"projects/{repo.repository_id}/repository/branches"

        if not self.all_branches:
            if not repo.branch:
                return []
            raw_branch = await self.client.get_json(f"{branches_path}/{quote(repo.branch, safe='')}")
            return [GitLabTranslator.to_branch(repo, raw_branch)]

        raw_branches = await self.client.get_paginated(branches_path, params={"per_page": PAGE_SIZE})
        return [GitLabTranslator.to_branch(repo, raw_branch) for raw_branch in raw_branches]

    async def _lookup_path(self, repo: Repository, path: str) -> bool:
        # The tree API lists directories, so look for the entry inside its parent
        parent = posixpath.dirname(path)
        params = {"ref": repo.branch, "per_page": PAGE_SIZE}
        if parent:
            params["path"] = parent

        entries = await self.client.get_paginated(f"projects/{repo.repository_id}/repository/tree", params=params)
        if not path:
            return True
        return any(entry.get("path") == path for entry in entries)

    def is_path_not_found(self, error: ScmApiError) -> bool:
        return isinstance(error, NotFoundError) and error.payload.get("message") == TREE_NOT_FOUND

    async def _confirm_ref(self, repo: Repository) -> None:
        # The tree API also answers an unknown ref with "404 Tree Not Found"
        await self.client.get_json(f"projects/{repo.repository_id}/repository/branches/{quote(repo.branch, safe='')}")

    async def close(self) -> None:
        await self.client.close()
