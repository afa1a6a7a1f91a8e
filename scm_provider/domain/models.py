from typing import Tuple, Union
from pydantic import BaseModel, Field, ConfigDict, field_validator

class Repository(BaseModel):
    """
    Immutable, provider-agnostic representation of a discovered repository or branch.
    Repository-level results carry the default branch and an empty SHA; branch-level
    results (from get_branches) carry a specific branch and its head commit.
    """
    # Enforces immutability: once created, fields cannot be modified.
    model_config = ConfigDict(frozen=True)

    organization: str = Field(..., description="Owning organization, group, namespace or workspace")
    repository: str = Field(..., description="Repository name, unique within the organization")
    url: str = Field(..., description="Clone URL, https or ssh depending on the clone protocol")
    branch: str = Field(default="", description="Default branch, or the specific branch for branch-level results")
    sha: str = Field(default="", description="Head commit of the branch; empty before branch expansion")
    labels: Tuple[str, ...] = Field(
        default=(),
        description="Topics or tags attached to the repository"
    )
    repository_id: Union[int, str] = Field(
        ...,
        description="Opaque backend-native id; only meaningful to the provider that produced it"
    )

    @field_validator("labels", mode="before")
    @classmethod
    def labels_never_none(cls, value):
        return () if value is None else value

    def with_branch(self, branch: str, sha: str) -> "Repository":
        """Returns a copy that differs only in branch and sha."""
        return self.model_copy(update={"branch": branch, "sha": sha})
