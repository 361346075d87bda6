"""
Versioning Policy - Tunable limits for the budget versioning engine

The policy bounds the parts of the model that would otherwise be open-ended:
how deep a derivation chain may grow and how much free-form metadata a
version may carry.
"""

from pydantic import BaseModel, Field


class VersioningPolicy(BaseModel):
    """
    Engine limits

    Injected into the command handlers and the façade. The defaults are
    generous enough for planning teams that keep a few dozen scenarios per
    fiscal year.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking changes over time",
    )

    max_derivation_depth: int = Field(
        default=32,
        ge=1,
        le=1000,
        description="Maximum length of a parent chain, counting the new version",
    )

    max_metadata_extensions: int = Field(
        default=16,
        ge=0,
        description="Maximum number of free-form keys in VersionMetadata.extensions",
    )

    max_tags: int = Field(
        default=20,
        ge=0,
        description="Maximum number of tags on a version",
    )

    max_assumptions: int = Field(
        default=50,
        ge=0,
        description="Maximum number of recorded assumptions on a version",
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "description": "Limits governing derivation chains and version metadata"
        },
    }


# Used by BudgetVersioning when no policy is passed
default_policy = VersioningPolicy()
