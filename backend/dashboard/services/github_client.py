import asyncio
import httpx
from urllib.parse import urlencode
from typing import List, Dict, Any

from dashboard.core.config import get_settings
from dashboard.schemas.github import PullRequest, PullRequestRepository
from dashboard.utils.logger import get_logger

logger = get_logger("github")
settings = get_settings()


class GitHubAuthService:
    GITHUB_AUTH_URL = "https://github.com/login/oauth/authorize"
    GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
    SCOPES = ["repo", "read:user"]

    @classmethod
    def get_authorization_url(cls, state: str) -> str:
        if not settings.GITHUB_CLIENT_ID:
            raise ValueError("GitHub Client ID must be configured.")
        params = {
            "client_id": settings.GITHUB_CLIENT_ID,
            "scope": " ".join(cls.SCOPES),
            "state": state,
        }
        return f"{cls.GITHUB_AUTH_URL}?{urlencode(params)}"

    @classmethod
    async def exchange_code_for_token(cls, code: str) -> Dict[str, Any]:
        """GitHub answers 200 with an ``error`` field when the code is rejected."""
        if not settings.GITHUB_CLIENT_ID or not settings.GITHUB_CLIENT_SECRET:
            raise ValueError("GitHub Client ID and Secret must be configured.")

        async with httpx.AsyncClient() as client:
            response = await client.post(
                cls.GITHUB_TOKEN_URL,
                headers={"Accept": "application/json"},
                json={
                    "client_id": settings.GITHUB_CLIENT_ID,
                    "client_secret": settings.GITHUB_CLIENT_SECRET,
                    "code": code,
                },
            )
            return response.json()


def repository_fallback(repository_url: str) -> PullRequestRepository:
    """Derives owner/name and the web URL from an api.github.com repository URL."""
    parts = repository_url.rstrip("/").split("/")
    return PullRequestRepository(
        full_name=f"{parts[-2]}/{parts[-1]}",
        html_url=repository_url.replace("api.github.com/repos", "github.com"),
    )


class GitHubClient:
    GITHUB_API_URL = "https://api.github.com"

    def __init__(self, access_token: str):
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def get_user(self) -> Dict[str, Any]:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{self.GITHUB_API_URL}/user", headers=self.headers)
            response.raise_for_status()
            return response.json()

    async def _get_repository(self, client: httpx.AsyncClient, repository_url: str) -> PullRequestRepository:
        try:
            response = await client.get(repository_url, headers=self.headers)
            response.raise_for_status()
            data = response.json()
            return PullRequestRepository(full_name=data["full_name"], html_url=data["html_url"])
        except (httpx.HTTPError, KeyError) as e:
            logger.warning(f"Falling back to URL-derived repository for {repository_url}: {e}")
            return repository_fallback(repository_url)

    async def search_pull_requests(self, query: str) -> List[PullRequest]:
        params = {"q": query, "sort": "updated", "order": "desc", "per_page": 50}
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{self.GITHUB_API_URL}/search/issues", headers=self.headers, params=params)
            response.raise_for_status()
            items = response.json().get("items", [])

            repo_urls = list(dict.fromkeys(item["repository_url"] for item in items))
            repos = await asyncio.gather(*(self._get_repository(client, url) for url in repo_urls))
            repo_map = dict(zip(repo_urls, repos))

        return [
            PullRequest(
                id=item["id"],
                number=item["number"],
                title=item["title"],
                html_url=item["html_url"],
                state=item["state"],
                draft=item.get("draft", False),
                created_at=item["created_at"],
                updated_at=item["updated_at"],
                repository=repo_map[item["repository_url"]],
                user={"login": item["user"]["login"], "avatar_url": item["user"].get("avatar_url")},
                labels=[{"name": l["name"], "color": l["color"]} for l in item.get("labels", [])],
            )
            for item in items
        ]

    async def review_requested(self, username: str) -> List[PullRequest]:
        return await self.search_pull_requests(f"type:pr state:open review-requested:{username}")

    async def created(self, username: str) -> List[PullRequest]:
        return await self.search_pull_requests(f"type:pr state:open author:{username}")

    async def all_open(self, username: str) -> List[PullRequest]:
        # author, assignee, mentions or review requests
        return await self.search_pull_requests(f"type:pr state:open involves:{username}")
