from typing import List
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.dialects.postgresql import insert, JSONB
from sqlalchemy import Table, Column, String, DateTime, MetaData, PrimaryKeyConstraint, text

from scm_provider.domain.models import Repository

# SQLAlchemy core Table definition
metadata = MetaData()
discovered_table = Table(
    'scm_discovered_repositories', metadata,
    Column('provider', String, nullable=False),
    Column('organization', String, nullable=False),
    Column('repository', String, nullable=False),
    Column('branch', String, nullable=False),
    Column('repository_id', String, nullable=False),
    Column('url', String, nullable=False),
    Column('sha', String, nullable=False),
    Column('labels', JSONB, server_default=text("'[]'::jsonb")),
    Column('discovered_at', DateTime(timezone=True), server_default=text('NOW()')),
    PrimaryKeyConstraint('provider', 'organization', 'repository', 'branch'),
)

class PostgresRepository:
    """
    Exports discovery results to PostgreSQL.
    Each run upserts one row per discovered branch; nothing here is read back by discovery.
    """

    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url, echo=False)

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def bulk_upsert(self, provider: str, repos: List[Repository]) -> None:
        """
        Inserts or refreshes the given branch-level entries in a single statement.

        Args:
            provider (str): Backend name the entries were discovered with.
            repos (List[Repository]): Branch-level discovery results.
        """
        if not repos:
            return  # Nothing discovered

        values = [
            {   'provider': provider,
                'organization': repo.organization,
                'repository': repo.repository,
                'branch': repo.branch,
                'repository_id': str(repo.repository_id),
                'url': repo.url,
                'sha': repo.sha,
                'labels': list(repo.labels),
            } for repo in repos
        ]

        async with self.engine.begin() as conn:
            stmt = insert(discovered_table).values(values)

            # Only touch rows whose head commit, url or labels moved since the last run.
            upsert_stmt = stmt.on_conflict_do_update(
                index_elements=['provider', 'organization', 'repository', 'branch'],
                set_={
                    'sha': stmt.excluded.sha,
                    'url': stmt.excluded.url,
                    'labels': stmt.excluded.labels,
                    'repository_id': stmt.excluded.repository_id,
                    'discovered_at': text('NOW()'),
                },
                where=(
                    discovered_table.c.sha.is_distinct_from(stmt.excluded.sha)
                    | discovered_table.c.url.is_distinct_from(stmt.excluded.url)
                    | discovered_table.c.labels.is_distinct_from(stmt.excluded.labels)
                )
            )

            await conn.execute(upsert_stmt)

    async def dispose(self) -> None:
        await self.engine.dispose()
