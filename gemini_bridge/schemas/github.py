"""Subset of ``gh --json`` output consumed by the PR monitor."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Author(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str = ""


class PRComment(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = ""
    author: Author = Field(default_factory=Author)
    body: str = ""
    state: Optional[str] = None


class PullRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    number: int
    title: str = ""
    state: str = "OPEN"
    head_ref: str = Field(default="", alias="headRefName")
    review_decision: Optional[str] = Field(default=None, alias="reviewDecision")
    reviews: List[PRComment] = Field(default_factory=list)
    comments: List[PRComment] = Field(default_factory=list)


class WorkflowRun(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int = Field(default=0, alias="databaseId")
    name: str = ""
    status: str = ""
    conclusion: Optional[str] = None
    head_sha: str = Field(default="", alias="headSha")
