import asyncio
import os
import sys
import logging
from dotenv import load_dotenv

from scm_provider.application.discovery_service import DEFAULT_MAX_CONCURRENCY, DiscoveryService
from scm_provider.application.filters import RepositoryFilter
from scm_provider.domain.exceptions import ConfigurationError, ScmProviderException
from scm_provider.infrastructure.database import PostgresRepository
from scm_provider.infrastructure.factory import build_provider

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


def filters_from_env() -> list:
    repository_match = os.getenv("SCM_REPOSITORY_MATCH") or None
    label_match = os.getenv("SCM_LABEL_MATCH") or None
    branch_match = os.getenv("SCM_BRANCH_MATCH") or None
    paths_exist = _env_list("SCM_PATHS_EXIST")
    paths_do_not_exist = _env_list("SCM_PATHS_DO_NOT_EXIST")

    if not any([repository_match, label_match, branch_match, paths_exist, paths_do_not_exist]):
        return []
    return [RepositoryFilter(
        repository_match=repository_match,
        label_match=label_match,
        branch_match=branch_match,
        paths_exist=paths_exist,
        paths_do_not_exist=paths_do_not_exist,
    )]


async def main():
    # Load environment variables from .env file
    load_dotenv()

    kind = os.getenv("SCM_PROVIDER")
    token = os.getenv("SCM_TOKEN")
    organization = os.getenv("SCM_ORGANIZATION")
    db_url = os.getenv("DATABASE_URL")

    if not kind:
        logger.error("SCM_PROVIDER is not set in the environment.")
        sys.exit(1)

    if not organization:
        logger.error("SCM_ORGANIZATION is not set in the environment.")
        sys.exit(1)

    try:
        provider = build_provider(
            kind,
            token=token or "",
            organization=organization,
            project=os.getenv("SCM_PROJECT", ""),
            username=os.getenv("SCM_USERNAME", ""),
            api_url=os.getenv("SCM_API_URL") or None,
            all_branches=_env_flag("SCM_ALL_BRANCHES", True),
            insecure=_env_flag("SCM_INSECURE", False),
        )
        discovery_service = DiscoveryService(
            provider=provider,
            filters=filters_from_env(),
            clone_protocol=os.getenv("SCM_CLONE_PROTOCOL", ""),
            max_concurrency=int(os.getenv("SCM_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY)),
        )
    except (ConfigurationError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    try:
        async with provider:
            repos = await discovery_service.discover()
    except KeyboardInterrupt:
        logger.info("Discovery interrupted by user. Exiting gracefully.")
        return
    except ScmProviderException as e:
        logger.error(f"Discovery failed: {e}")
        sys.exit(1)

    for repo in repos:
        logger.info(f"{repo.organization}/{repo.repository}@{repo.branch} {repo.sha} {repo.url}")

    if db_url:
        db_repository = PostgresRepository(db_url=db_url)
        try:
            await db_repository.create_schema()
            await db_repository.bulk_upsert(kind, repos)
            logger.info(f"Exported {len(repos)} entries to the database.")
        except Exception as e:
            logger.exception(f"An unexpected error occurred while exporting: {e}")
            sys.exit(1)
        finally:
            await db_repository.dispose()

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
