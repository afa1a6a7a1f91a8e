import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from scm_provider.application.filters import CompiledFilter, RepositoryFilter, compile_filters
from scm_provider.domain.models import Repository
from scm_provider.domain.provider import ScmProviderService

logger = logging.getLogger(__name__)

# Number of get_branches / repo_has_path calls in flight at once
DEFAULT_MAX_CONCURRENCY = 5

T = TypeVar("T")
R = TypeVar("R")


class DiscoveryService:
    """
    Service that turns one provider into the final list of matching branches.

    Repositories are listed, narrowed by repository-level filters, expanded into
    branches, then narrowed by branch-level filters. Follow-up calls run concurrently
    up to max_concurrency; the first failure cancels the rest and propagates.
    """

    def __init__(
            self,
            provider: ScmProviderService,
            filters: Optional[List[RepositoryFilter]] = None,
            clone_protocol: str = "",
            max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    ):
        self.provider = provider
        self.filters = compile_filters(filters or [])
        self.clone_protocol = clone_protocol
        self.max_concurrency = max(max_concurrency, 1)

    async def discover(self) -> List[Repository]:
        repo_filters = [f for f in self.filters if not f.is_branch_level]
        branch_filters = [f for f in self.filters if f.is_branch_level]

        repos = await self.provider.list_repos(self.clone_protocol)
        logger.info(f"Listed {len(repos)} repositories in '{self.provider.organization}'.")

        if repo_filters:
            repos = await self._apply_filters(repo_filters, repos)
            logger.info(f"{len(repos)} repositories left after repository filters.")

        branch_lists = await self._run_bounded(self.provider.get_branches, repos)
        branches = [branch for branch_list in branch_lists for branch in branch_list]

        if branch_filters:
            branches = await self._apply_filters(branch_filters, branches)

        logger.info(f"Discovery completed. {len(branches)} matching branches.")
        return branches

    async def _apply_filters(self, filters: List[CompiledFilter], repos: List[Repository]) -> List[Repository]:
        async def keep(repo: Repository) -> bool:
            for compiled in filters:
                if await compiled.matches(self.provider, repo):
                    return True
            return False

        verdicts = await self._run_bounded(keep, repos)
        return [repo for repo, verdict in zip(repos, verdicts) if verdict]

    async def _run_bounded(self, func: Callable[[T], Awaitable[R]], items: List[T]) -> List[R]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(item: T) -> R:
            async with semaphore:
                return await func(item)

        tasks = [asyncio.ensure_future(bounded(item)) for item in items]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # Cancel siblings still in flight
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
