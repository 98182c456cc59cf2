"""GitHub-backed remote node source.

Reads node definitions straight from a GitHub repository through the REST
API. The head commit SHA of the configured branch is the version token; a
full fetch walks the git tree of that commit once and downloads every
``*.node.ts`` blob under the configured node paths.

GitHub REST API documentation:
https://docs.github.com/en/rest/git

Error Handling:
    - 401/403: RemoteAuthenticationError, not retried
    - 403 with exhausted quota, 429: RemoteRateLimitError, retried after
      Retry-After when the header is present, otherwise with backoff
    - 5xx, network errors: RemoteUnavailableError, retried with backoff
    - Timeouts: RemoteTimeoutError, retried with backoff

Example usage:
    source = GitHubNodeSource(RemoteSourceConfig(token="ghp_..."))
    token = await source.get_version_token()
    entries = await source.fetch_all(token)
"""

import base64
import binascii
import logging
import posixpath
from typing import Any, Dict, List, Optional

import httpx

from node_catalog.config.domains import RemoteSourceConfig
from node_catalog.core.concurrency import ConcurrencyLimiter
from node_catalog.core.discovery.types import RawEntry
from node_catalog.core.errors import (
    RemoteAuthenticationError,
    RemoteRateLimitError,
    RemoteSourceError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)
from node_catalog.core.retry import SleepFunc, async_retry_with_backoff
from node_catalog.core.sources.base import RemoteNodeSource

logger = logging.getLogger(__name__)

NODE_FILE_SUFFIX = ".node.ts"
USER_AGENT = "node-catalog"

# Repository directory name -> published package name
PACKAGE_NAMES: Dict[str, str] = {
    "nodes-base": "n8n-nodes-base",
    "nodes-langchain": "@n8n/n8n-nodes-langchain",
    "n8n-nodes-langchain": "@n8n/n8n-nodes-langchain",
}


def package_name_for_path(path: str) -> Optional[str]:
    """Derive the published package name from a repository file path."""
    for part in path.split("/"):
        if part in PACKAGE_NAMES:
            return PACKAGE_NAMES[part]
    return None


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value:
        try:
            return float(value)
        except ValueError:
            return None
    return None


class GitHubNodeSource(RemoteNodeSource):
    """Remote node source reading ``*.node.ts`` files from a GitHub repository."""

    def __init__(
        self,
        config: Optional[RemoteSourceConfig] = None,
        *,
        sleep_func: Optional[SleepFunc] = None,
    ):
        """Initialize the source.

        Args:
            config: Repository coordinates, credentials and limits
            sleep_func: Injectable sleep for retry backoff (tests)
        """
        self.config = config or RemoteSourceConfig()
        self._base_url = self.config.api_base_url.rstrip("/")
        self._repo_path = f"/repos/{self.config.owner}/{self.config.repo}"
        self._sleep_func = sleep_func

    def get_source_name(self) -> str:
        return "github"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_version_token(self) -> str:
        """Return the head commit SHA of the configured branch."""
        async with self._client() as client:
            data = await self._get_json(client, f"{self._repo_path}/branches/{self.config.branch}")

        sha = (data.get("commit") or {}).get("sha")
        if not sha:
            raise RemoteSourceError(
                self.get_source_name(),
                f"Branch '{self.config.branch}' response has no commit SHA",
            )
        logger.debug("Remote %s/%s head is %s", self.config.repo, self.config.branch, sha)
        return str(sha)

    async def fetch_all(self, version_token: Optional[str] = None) -> List[RawEntry]:
        """Download every node file under the configured node paths.

        The tree listing failing is fatal; an individual blob failing is
        logged and the entry skipped.

        Args:
            version_token: Commit SHA to read the tree at (default: branch head)
        """
        ref = version_token or self.config.branch
        async with self._client() as client:
            tree = await self._get_json(
                client,
                f"{self._repo_path}/git/trees/{ref}",
                params={"recursive": "1"},
            )
            if tree.get("truncated"):
                logger.warning(
                    "Git tree for %s/%s is truncated; some nodes may be missing",
                    self.config.owner,
                    self.config.repo,
                )

            candidates = [
                item
                for item in tree.get("tree", [])
                if item.get("type") == "blob" and self._is_node_file(item.get("path", ""))
            ]
            logger.info("Fetching %d node files from %s", len(candidates), self.get_source_name())

            limiter = ConcurrencyLimiter(
                self.config.max_concurrent_fetches, name="github-blobs"
            )

            async def fetch_one(item: Dict[str, Any]) -> RawEntry:
                return await self._fetch_entry(client, item)

            outcome = await limiter.map(fetch_one, candidates, return_exceptions=True)

        for index, error in outcome.failed_results():
            logger.warning(
                "Skipping %s: %s", candidates[index].get("path", "<unknown>"), error
            )
        entries = outcome.successful_results()
        logger.info(
            "Fetched %d/%d node files (%.2fs)",
            len(entries),
            len(candidates),
            outcome.stats.elapsed_seconds,
        )
        return entries

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        token = self.config.resolved_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self.config.timeout,
            headers=headers,
        )

    def _is_node_file(self, path: str) -> bool:
        if not path.endswith(NODE_FILE_SUFFIX):
            return False
        return any(
            path.startswith(node_path.rstrip("/") + "/") for node_path in self.config.node_paths
        )

    async def _fetch_entry(self, client: httpx.AsyncClient, item: Dict[str, Any]) -> RawEntry:
        path = item["path"]
        sha = item.get("sha")
        blob = await self._get_json(client, f"{self._repo_path}/git/blobs/{sha}")

        content = blob.get("content", "")
        if blob.get("encoding", "base64") == "base64":
            try:
                text = base64.b64decode(content).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as exc:
                raise RemoteSourceError(
                    self.get_source_name(), f"Undecodable blob for {path}", original_error=exc
                ) from exc
        else:
            text = str(content)

        return RawEntry(
            name=posixpath.basename(path)[: -len(NODE_FILE_SUFFIX)],
            source_text=text,
            source_path=path,
            package_name=package_name_for_path(path),
            sha=sha,
        )

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        *,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """GET an endpoint, retrying transient failures."""

        async def make_request() -> Dict[str, Any]:
            try:
                response = await client.get(endpoint, params=params)
            except httpx.TimeoutException as exc:
                raise RemoteTimeoutError(
                    self.get_source_name(),
                    timeout_seconds=self.config.timeout,
                    operation=f"GET {endpoint}",
                    original_error=exc,
                ) from exc
            except httpx.HTTPError as exc:
                raise RemoteUnavailableError(
                    self.get_source_name(), f"Request failed: {exc}", original_error=exc
                ) from exc
            return self._check_response(response, endpoint)

        return await async_retry_with_backoff(
            make_request,
            max_retries=self.config.max_retries,
            retryable_exceptions=[RemoteUnavailableError, RemoteRateLimitError],
            sleep_func=self._sleep_func,
        )

    def _check_response(self, response: httpx.Response, endpoint: str) -> Dict[str, Any]:
        source = self.get_source_name()
        status = response.status_code

        if status == 401:
            raise RemoteAuthenticationError(source, "Bad credentials")
        if status == 403:
            if response.headers.get("X-RateLimit-Remaining") == "0":
                raise RemoteRateLimitError(source, retry_after=_parse_retry_after(response))
            raise RemoteAuthenticationError(source, "Access forbidden")
        if status == 429:
            raise RemoteRateLimitError(source, retry_after=_parse_retry_after(response))
        if status >= 500:
            raise RemoteUnavailableError(source, f"API error {status} for {endpoint}")
        if status >= 400:
            raise RemoteSourceError(source, f"API error {status} for {endpoint}")

        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteSourceError(
                source, f"Invalid JSON from {endpoint}", original_error=exc
            ) from exc
        if not isinstance(data, dict):
            raise RemoteSourceError(source, f"Unexpected payload from {endpoint}")
        return data
