import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from scm_provider.domain.exceptions import ConfigurationError
from scm_provider.domain.models import Repository
from scm_provider.domain.provider import ScmProviderService


class RepositoryFilter(BaseModel):
    """
    One match rule. Every condition that is set must hold (AND); a discovery run
    keeps an entry when any of its filters matches (OR).
    """
    model_config = ConfigDict(frozen=True)

    repository_match: Optional[str] = Field(default=None, description="Regex searched in the repository name")
    label_match: Optional[str] = Field(default=None, description="Regex that at least one label must match")
    branch_match: Optional[str] = Field(default=None, description="Regex searched in the branch name")
    paths_exist: List[str] = Field(default_factory=list, description="Paths that must all exist on the branch")
    paths_do_not_exist: List[str] = Field(default_factory=list, description="Paths that must all be absent")

    @property
    def is_branch_level(self) -> bool:
        """Branch-level filters can only be evaluated after branch expansion."""
        return bool(self.branch_match or self.paths_exist or self.paths_do_not_exist)


class CompiledFilter:
    def __init__(self, rule: RepositoryFilter):
        self.rule = rule
        self.repository_match = _compile(rule.repository_match, "repository_match")
        self.label_match = _compile(rule.label_match, "label_match")
        self.branch_match = _compile(rule.branch_match, "branch_match")

    @property
    def is_branch_level(self) -> bool:
        return self.rule.is_branch_level

    async def matches(self, provider: ScmProviderService, repo: Repository) -> bool:
        if self.repository_match and not self.repository_match.search(repo.repository):
            return False
        if self.branch_match and not self.branch_match.search(repo.branch):
            return False
        if self.label_match and not any(self.label_match.search(label) for label in repo.labels):
            return False

        for path in self.rule.paths_exist:
            if not await provider.repo_has_path(repo, path.rstrip("/")):
                return False
        for path in self.rule.paths_do_not_exist:
            if await provider.repo_has_path(repo, path.rstrip("/")):
                return False
        return True


def _compile(expression: Optional[str], name: str) -> Optional[re.Pattern]:
    if expression is None:
        return None
    try:
        return re.compile(expression)
    except re.error as e:
        raise ConfigurationError(f"Invalid {name} regex {expression!r}: {e}") from e


def compile_filters(filters: List[RepositoryFilter]) -> List[CompiledFilter]:
    return [CompiledFilter(rule) for rule in filters]
