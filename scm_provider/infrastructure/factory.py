from typing import Optional

from scm_provider.domain.exceptions import ConfigurationError
from scm_provider.domain.provider import ScmProviderService
from scm_provider.infrastructure.azure_devops import AzureDevOpsProvider
from scm_provider.infrastructure.bitbucket_cloud import BitbucketCloudProvider
from scm_provider.infrastructure.gitea import GiteaProvider
from scm_provider.infrastructure.github import GitHubProvider
from scm_provider.infrastructure.gitlab import GitLabProvider

PROVIDER_KINDS = ("azure_devops", "bitbucket_cloud", "gitea", "github", "gitlab")


def build_provider(
    kind: str,
    token: str,
    organization: str,
    project: str = "",
    username: str = "",
    api_url: Optional[str] = None,
    all_branches: bool = True,
    insecure: bool = False,
) -> ScmProviderService:
    """
    Builds the provider for a backend name.
    Options a backend has no use for (e.g. project outside Azure DevOps) are ignored.
    """
    if kind == "azure_devops":
        return AzureDevOpsProvider(token, organization, project=project, api_url=api_url, all_branches=all_branches)
    if kind == "github":
        return GitHubProvider(token, organization, api_url=api_url, all_branches=all_branches)
    if kind == "gitlab":
        return GitLabProvider(token, organization, api_url=api_url, all_branches=all_branches, verify_ssl=not insecure)
    if kind == "gitea":
        return GiteaProvider(token, organization, api_url=api_url, all_branches=all_branches, insecure=insecure)
    if kind == "bitbucket_cloud":
        return BitbucketCloudProvider(username, token, organization, api_url=api_url, all_branches=all_branches)
    raise ConfigurationError(f"Unknown SCM provider {kind!r}, expected one of: {', '.join(PROVIDER_KINDS)}")
