from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import List, Optional, Literal

PRCategory = Literal["review-requested", "created", "all-open"]

class PullRequestRepository(BaseModel):
    full_name: str
    html_url: str

class PullRequestUser(BaseModel):
    login: str
    avatar_url: Optional[str] = None

class PullRequestLabel(BaseModel):
    name: str
    color: str

class PullRequest(BaseModel):
    id: int
    number: int
    title: str
    html_url: str
    state: str
    draft: bool = False
    created_at: datetime
    updated_at: datetime
    repository: PullRequestRepository
    user: PullRequestUser
    labels: List[PullRequestLabel] = []

class PRCategoryData(BaseModel):
    category: PRCategory
    label: str
    items: List[PullRequest]

class GitHubAccountResponse(BaseModel):
    id: int
    user_id: int
    github_user_id: int
    github_username: str
    avatar_url: Optional[str] = None
    account_label: str
    created_at: datetime

    class Config:
        from_attributes = True

class GitHubAccountWithPRs(BaseModel):
    account: GitHubAccountResponse
    categories: List[PRCategoryData]

class AccountError(BaseModel):
    account_id: Optional[int] = None
    message: str

class FetchPRsResult(BaseModel):
    accounts: List[GitHubAccountWithPRs] = []
    errors: List[AccountError] = []

class AccountLabelUpdate(BaseModel):
    label: str

    @field_validator('label')
    @classmethod
    def validate_label(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Label must not be empty')
        return v
