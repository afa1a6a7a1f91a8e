from typing import Any, Dict, List
from scm_provider.domain.exceptions import ConfigurationError
from scm_provider.domain.models import Repository

AZURE_BRANCH_PREFIX = "refs/heads/"


def _select_clone_url(backend: str, urls: Dict[str, str], clone_protocol: str, default: str) -> str:
    protocol = clone_protocol or default
    if protocol not in urls:
        raise ConfigurationError(f"Unknown clone protocol for {backend}: {clone_protocol!r}")
    return urls[protocol] or ""


def validate_clone_protocol(backend: str, clone_protocol: str) -> None:
    """Rejects a clone protocol before any backend call is made."""
    if clone_protocol not in ("", "https", "ssh"):
        raise ConfigurationError(f"Unknown clone protocol for {backend}: {clone_protocol!r}")


class AzureDevOpsTranslator:
    """
    Anti-corruption layer for Azure DevOps Git REST responses.
    repository_id is the repository GUID as a string.
    """

    @staticmethod
    def to_domain(raw_repo: Dict[str, Any], organization: str, clone_protocol: str = "") -> Repository:
        default_branch = raw_repo.get("defaultBranch") or ""
        return Repository(
            organization=organization,
            repository=raw_repo.get("name", ""),
            url=_select_clone_url(
                "Azure DevOps",
                {"https": raw_repo.get("remoteUrl"), "ssh": raw_repo.get("sshUrl")},
                clone_protocol,
                default="https",
            ),
            branch=strip_branch_prefix(default_branch),
            labels=[],
            repository_id=raw_repo.get("id", ""),
        )

    @staticmethod
    def to_branch(repo: Repository, raw_branch: Dict[str, Any]) -> Repository:
        commit = raw_branch.get("commit") or {}
        return repo.with_branch(strip_branch_prefix(raw_branch.get("name", "")), commit.get("commitId", ""))


def strip_branch_prefix(ref: str) -> str:
    if ref.startswith(AZURE_BRANCH_PREFIX):
        return ref[len(AZURE_BRANCH_PREFIX):]
    return ref


class GitHubTranslator:
    """
    Translates GitHub REST v3 repository and branch JSON.
    repository_id is GitHub's numeric repository id.
    """

    @staticmethod
    def to_domain(raw_repo: Dict[str, Any], clone_protocol: str = "") -> Repository:
        owner_data = raw_repo.get("owner") or {}
        return Repository(
            organization=owner_data.get("login", ""),
            repository=raw_repo.get("name", ""),
            url=_select_clone_url(
                "GitHub",
                {"https": raw_repo.get("clone_url"), "ssh": raw_repo.get("ssh_url")},
                clone_protocol,
                default="ssh",
            ),
            branch=raw_repo.get("default_branch") or "",
            labels=list(raw_repo.get("topics") or []),
            repository_id=raw_repo.get("id", 0),
        )

    @staticmethod
    def to_branch(repo: Repository, raw_branch: Dict[str, Any]) -> Repository:
        commit = raw_branch.get("commit") or {}
        return repo.with_branch(raw_branch.get("name", ""), commit.get("sha", ""))


class GitLabTranslator:
    """
    Translates GitLab v4 project and branch JSON.
    organization is the namespace full path; repository_id is the numeric project id.
    """

    @staticmethod
    def to_domain(raw_project: Dict[str, Any], clone_protocol: str = "") -> Repository:
        namespace = raw_project.get("namespace") or {}
        # `topics` replaced `tag_list` in GitLab 14.0
        labels: List[str] = raw_project.get("topics") or raw_project.get("tag_list") or []
        return Repository(
            organization=namespace.get("full_path", ""),
            repository=raw_project.get("path", ""),
            url=_select_clone_url(
                "GitLab",
                {"https": raw_project.get("http_url_to_repo"), "ssh": raw_project.get("ssh_url_to_repo")},
                clone_protocol,
                default="ssh",
            ),
            branch=raw_project.get("default_branch") or "",
            labels=list(labels),
            repository_id=raw_project.get("id", 0),
        )

    @staticmethod
    def to_branch(repo: Repository, raw_branch: Dict[str, Any]) -> Repository:
        commit = raw_branch.get("commit") or {}
        return repo.with_branch(raw_branch.get("name", ""), commit.get("id", ""))


class GiteaTranslator:
    """
    Translates Gitea v1 repository and branch JSON.
    Topics are not part of the listing response, so labels stay empty.
    """

    @staticmethod
    def to_domain(raw_repo: Dict[str, Any], clone_protocol: str = "") -> Repository:
        owner_data = raw_repo.get("owner") or {}
        return Repository(
            organization=owner_data.get("login") or owner_data.get("username", ""),
            repository=raw_repo.get("name", ""),
            url=_select_clone_url(
                "Gitea",
                {"https": raw_repo.get("clone_url"), "ssh": raw_repo.get("ssh_url")},
                clone_protocol,
                default="ssh",
            ),
            branch=raw_repo.get("default_branch") or "",
            labels=[],
            repository_id=raw_repo.get("id", 0),
        )

    @staticmethod
    def to_branch(repo: Repository, raw_branch: Dict[str, Any]) -> Repository:
        commit = raw_branch.get("commit") or {}
        return repo.with_branch(raw_branch.get("name", ""), commit.get("id", ""))


class BitbucketCloudTranslator:
    """
    Translates Bitbucket Cloud 2.0 repository and ref JSON.
    repository is the slug; repository_id is the braced uuid.
    """

    @staticmethod
    def to_domain(raw_repo: Dict[str, Any], workspace: str, clone_protocol: str = "") -> Repository:
        links = raw_repo.get("links") or {}
        clone_links = {link.get("name"): link.get("href") for link in links.get("clone") or []}
        main_branch = raw_repo.get("mainbranch") or {}
        return Repository(
            organization=workspace,
            repository=raw_repo.get("slug", ""),
            url=_select_clone_url(
                "Bitbucket Cloud",
                {"https": clone_links.get("https"), "ssh": clone_links.get("ssh")},
                clone_protocol,
                default="ssh",
            ),
            branch=main_branch.get("name", ""),
            labels=[],
            repository_id=raw_repo.get("uuid", ""),
        )

    @staticmethod
    def to_branch(repo: Repository, raw_branch: Dict[str, Any]) -> Repository:
        target = raw_branch.get("target") or {}
        return repo.with_branch(raw_branch.get("name", ""), target.get("hash", ""))
