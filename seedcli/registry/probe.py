"""Registry probe — read-only queries against a Docker Registry v2 API.

Lists the tags of a repository (and, for ``seed search``, the repositories
in a registry). Anonymous access is tried first; credentials are only used
when the registry challenges for them. Results are never cached: every call
goes to the network.
"""

from __future__ import annotations

import logging
import re

import httpx

from seedcli.errors import RegistryUnavailableError
from seedcli.registry.models import (
    Credentials,
    ImageName,
    RegistryTagSet,
    is_docker_hub,
)

logger = logging.getLogger(__name__)

DOCKER_HUB_API = "https://registry-1.docker.io"
DOCKER_HUB_REPOSITORIES_API = "https://hub.docker.com/v2/repositories"

_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')
_PAGE_SIZE = 100


class RegistryProbe:
    """Docker Registry HTTP API v2 client for tag and catalog listing.

    Args:
        endpoint: Registry host (``registry.example.com:5000``) or base URL.
            Docker Hub host names are mapped to the Hub's registry API.
        credentials: Used only if the registry asks for authentication.
        timeout: Per-request timeout in seconds; a timeout is fatal.
        insecure: Use plain HTTP for scheme-less endpoints.
        client: Pre-built client (tests inject one with a mock transport).
    """

    def __init__(
        self,
        endpoint: str,
        credentials: Credentials | None = None,
        timeout: float = 30.0,
        insecure: bool = False,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.base_url = _base_url(endpoint, insecure)
        self.credentials = credentials
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def __enter__(self) -> RegistryProbe:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # -- tags ----------------------------------------------------------------

    def list_tags(self, image: ImageName) -> RegistryTagSet:
        """Return the tags the registry holds for *image*'s repository.

        An unknown repository is an empty result, not an error.

        Raises:
            RegistryUnavailableError: network failure, timeout, auth refusal,
                or an unexpected status.
        """
        repo = image.path
        scope = f"repository:{repo}:pull"
        url = f"{self.base_url}/v2/{repo}/tags/list?n={_PAGE_SIZE}"

        tags: set[str] = set()
        seen: set[str] = set()
        while url:
            _mark_visited(url, seen, self.endpoint)
            resp = self._get(url, scope)
            if resp.status_code == 404:
                logger.debug("Repository %s not found on %s", repo, self.endpoint)
                break
            _raise_for_status(resp, self.endpoint)
            tags.update(_json(resp, self.endpoint).get("tags") or [])
            url = self._next_link(resp)

        logger.debug("Registry %s reports %d tag(s) for %s", self.endpoint, len(tags), repo)
        return RegistryTagSet(repository=repo, tags=frozenset(tags))

    # -- catalog -------------------------------------------------------------

    def list_repositories(self, org: str = "") -> list[str]:
        """List repository paths, optionally restricted to *org*.

        Docker Hub has no catalog endpoint, so an org is required there and
        the Hub's repositories API is used instead.
        """
        if is_docker_hub(self.endpoint):
            if not org:
                raise RegistryUnavailableError(
                    "Docker Hub cannot list repositories without an organization (-o)"
                )
            return self._list_hub_repositories(org)

        repos: list[str] = []
        url = f"{self.base_url}/v2/_catalog?n={_PAGE_SIZE}"
        seen: set[str] = set()
        while url:
            _mark_visited(url, seen, self.endpoint)
            resp = self._get(url, "registry:catalog:*")
            _raise_for_status(resp, self.endpoint)
            repos.extend(_json(resp, self.endpoint).get("repositories") or [])
            url = self._next_link(resp)

        if org:
            repos = [r for r in repos if r.startswith(f"{org}/")]
        return repos

    def _list_hub_repositories(self, org: str) -> list[str]:
        repos: list[str] = []
        url = f"{DOCKER_HUB_REPOSITORIES_API}/{org}/?page_size={_PAGE_SIZE}"
        seen: set[str] = set()
        while url:
            _mark_visited(url, seen, "hub.docker.com")
            resp = self._send(url)
            if resp.status_code == 404:
                break
            _raise_for_status(resp, "hub.docker.com")
            data = _json(resp, "hub.docker.com")
            repos.extend(f"{org}/{r['name']}" for r in data.get("results", []))
            url = data.get("next") or ""
        return repos

    # -- transport -----------------------------------------------------------

    def _get(self, url: str, scope: str) -> httpx.Response:
        """GET anonymously, then answer an auth challenge once if one comes back."""
        resp = self._send(url)
        if resp.status_code != 401:
            return resp

        challenge = resp.headers.get("www-authenticate", "")
        scheme = challenge.split(" ", 1)[0].lower()
        if scheme == "bearer":
            token = self._fetch_token(challenge, scope)
            resp = self._send(url, headers={"Authorization": f"Bearer {token}"})
        elif scheme == "basic" and self.credentials:
            resp = self._send(url, auth=(self.credentials.username, self.credentials.password))

        if resp.status_code in (401, 403):
            who = f"as {self.credentials.username!r}" if self.credentials else "anonymously"
            raise RegistryUnavailableError(
                f"Registry {self.endpoint} refused access {who} (HTTP {resp.status_code})"
            )
        return resp

    def _fetch_token(self, challenge: str, scope: str) -> str:
        params = dict(_CHALLENGE_PARAM_RE.findall(challenge))
        realm = params.pop("realm", "")
        if not realm:
            raise RegistryUnavailableError(
                f"Registry {self.endpoint} sent a Bearer challenge without a realm"
            )
        params.setdefault("scope", scope)
        auth = (self.credentials.username, self.credentials.password) if self.credentials else None

        resp = self._send(realm, params=params, auth=auth)
        if resp.status_code in (401, 403):
            raise RegistryUnavailableError(
                f"Token service {realm} rejected the credentials (HTTP {resp.status_code})"
            )
        _raise_for_status(resp, realm)
        body = _json(resp, realm)
        token = body.get("token") or body.get("access_token")
        if not token:
            raise RegistryUnavailableError(f"Token service {realm} returned no token")
        return token

    def _send(self, url: str, **kwargs) -> httpx.Response:
        try:
            return self._client.get(url, **kwargs)
        except httpx.TimeoutException as e:
            raise RegistryUnavailableError(f"Timed out contacting {self.endpoint}: {e}") from e
        except httpx.HTTPError as e:
            raise RegistryUnavailableError(f"Cannot reach registry {self.endpoint}: {e}") from e

    def _next_link(self, resp: httpx.Response) -> str:
        nxt = resp.links.get("next", {}).get("url", "")
        if nxt and nxt.startswith("/"):
            return f"{self.base_url}{nxt}"
        return nxt


def _base_url(endpoint: str, insecure: bool) -> str:
    if not endpoint or is_docker_hub(endpoint):
        return DOCKER_HUB_API
    if "://" in endpoint:
        return endpoint.rstrip("/")
    scheme = "http" if insecure else "https"
    return f"{scheme}://{endpoint.rstrip('/')}"


def _raise_for_status(resp: httpx.Response, where: str) -> None:
    if resp.is_success:
        return
    raise RegistryUnavailableError(
        f"{where} returned HTTP {resp.status_code} for {resp.request.url}"
    )


def _json(resp: httpx.Response, where: str) -> dict:
    try:
        data = resp.json()
    except ValueError as e:
        raise RegistryUnavailableError(f"{where} returned a non-JSON response") from e
    if not isinstance(data, dict):
        raise RegistryUnavailableError(f"{where} returned an unexpected response body")
    return data


def _mark_visited(url: str, seen: set[str], where: str) -> None:
    if url in seen:
        raise RegistryUnavailableError(f"{where} returned a pagination loop at {url}")
    seen.add(url)
