"""GitHub repository listings for forge categories."""

import logging
from typing import Iterator, List, Optional

import requests

from ..errors import ForgeError
from .repository_info import RepoDescriptor

PAGE_SIZE = 100


class ForgeCatalog:
    """
    Lists repositories of a GitHub user or organization.

    Pages are fetched one at a time; an empty page ends the listing.
    """

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        login: Optional[str] = None,
        token: Optional[str] = None,
        organization: bool = False,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        self.api_url = api_url.rstrip("/")
        self.organization = organization
        self.timeout = timeout
        self.logger = logging.getLogger('reposync.git_sync.forge')
        self._session = session or self._create_session(login, token)

    @staticmethod
    def _create_session(login: Optional[str], token: Optional[str]) -> requests.Session:
        session = requests.Session()
        session.headers["Accept"] = "application/vnd.github+json"
        if token and login:
            session.auth = (login, token)
        elif token:
            session.headers["Authorization"] = f"token {token}"
        return session

    def _get(self, path: str, params: Optional[dict] = None):
        url = f"{self.api_url}{path}"
        self.logger.debug(f"GET {url} {params or ''}")
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise ForgeError(f"{url} returned HTTP {status}") from e
        except requests.RequestException as e:
            raise ForgeError(f"cannot reach {url}: {e}") from e
        except ValueError as e:
            raise ForgeError(f"{url} returned invalid JSON") from e

    def list_repositories(self, account: str, page: int) -> List[RepoDescriptor]:
        """
        One page of repositories owned by ``account``.

        Args:
            account: User or organization name
            page: 1-based page number

        Returns:
            Descriptors on that page; an empty list means no more pages
        """
        kind = "orgs" if self.organization else "users"
        data = self._get(f"/{kind}/{account}/repos", params={"page": page, "per_page": PAGE_SIZE})
        if not isinstance(data, list):
            raise ForgeError(f"unexpected repository listing for {account}")
        return [self._descriptor(item, account) for item in data]

    def iter_repositories(self, account: str) -> Iterator[RepoDescriptor]:
        """Lazily page through every repository of ``account``."""
        page = 1
        while True:
            repositories = self.list_repositories(account, page)
            if not repositories:
                return
            yield from repositories
            page += 1

    def list_network(self, account: str, repository: str) -> List[str]:
        """
        Accounts related to ``account/repository``: its parent's owner and the owners of its forks.

        Returns:
            Account names in listing order, without duplicates or ``account`` itself
        """
        accounts = []
        details = self._get(f"/repos/{account}/{repository}")
        parent = details.get("parent") if isinstance(details, dict) else None
        if parent:
            accounts.append(parent["owner"]["login"])

        page = 1
        while True:
            forks = self._get(f"/repos/{account}/{repository}/forks", params={"page": page, "per_page": PAGE_SIZE})
            if not isinstance(forks, list):
                raise ForgeError(f"unexpected fork listing for {account}/{repository}")
            if not forks:
                break
            accounts.extend(fork["owner"]["login"] for fork in forks)
            page += 1

        return [name for name in dict.fromkeys(accounts) if name != account]

    @staticmethod
    def _descriptor(item: dict, account: str) -> RepoDescriptor:
        owner = (item.get("owner") or {}).get("login", account)
        return RepoDescriptor(
            name=item["name"],
            owner=owner,
            ssh_url=item.get("ssh_url"),
            clone_url=item.get("clone_url") or item.get("git_url"),
            fork=bool(item.get("fork")),
        )


def network_remote_url(descriptor: RepoDescriptor, account: str) -> str:
    """Read-only clone URL of ``account``'s copy of the repository."""
    if descriptor.clone_url and f"/{descriptor.owner}/" in descriptor.clone_url:
        return descriptor.clone_url.replace(f"/{descriptor.owner}/", f"/{account}/", 1)
    return f"https://github.com/{account}/{descriptor.name}.git"
