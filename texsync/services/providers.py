"""Map repository URLs to git providers and resolve credentials for them."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol
from urllib.parse import quote, urlsplit, urlunsplit

from texsync.schemas.pydantic import ProviderAuth, SelfHostedInstance

logger = logging.getLogger(__name__)

_OVERLEAF_HOSTS = {"overleaf.com", "www.overleaf.com", "git.overleaf.com"}
_OVERLEAF_GIT_BASE = "https://git.overleaf.com"
_OVERLEAF_PROJECT_RE = re.compile(r"^/project/(?P<id>[A-Za-z0-9]+)/?$")
_OVERLEAF_GIT_RE = re.compile(r"^/(?P<id>[A-Za-z0-9]+?)(?:\.git)?/?$")
# scp-style ssh remotes: [user@]host:path
_SCP_REMOTE_RE = re.compile(r"^(?:[^@/\s]+@)?(?P<host>[A-Za-z0-9.-]+):(?!//)")


class ProviderKind(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    SELFHOSTED_GITLAB = "selfhosted-gitlab"
    OVERLEAF = "overleaf"
    GENERIC = "generic"


@dataclass(frozen=True)
class OverleafProject:
    project_id: str
    git_url: str


def _host(url: str) -> str:
    url = url.strip()
    scp = _SCP_REMOTE_RE.match(url)
    if scp:
        return scp.group("host").lower()
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def parse_overleaf_url(url: str) -> OverleafProject | None:
    """Project id and git remote for an Overleaf project or git URL."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    host = (parts.hostname or "").lower()
    if host not in _OVERLEAF_HOSTS:
        return None

    pattern = _OVERLEAF_GIT_RE if host == "git.overleaf.com" else _OVERLEAF_PROJECT_RE
    match = pattern.match(parts.path)
    if not match:
        return None
    project_id = match.group("id")
    return OverleafProject(project_id=project_id, git_url=f"{_OVERLEAF_GIT_BASE}/{project_id}")


def match_self_hosted_instance(
    git_url: str,
    instances: list[SelfHostedInstance],
) -> SelfHostedInstance | None:
    """Longest instance URL that prefixes ``git_url`` at a path boundary."""
    best: SelfHostedInstance | None = None
    for instance in instances:
        base = instance.url.strip().rstrip("/")
        if not base:
            continue
        if git_url == base or git_url.startswith(base + "/"):
            if best is None or len(base) > len(best.url.strip().rstrip("/")):
                best = instance
    return best


def resolve_provider(
    git_url: str,
    self_hosted_instances: list[SelfHostedInstance] | None = None,
) -> ProviderKind:
    host = _host(git_url)
    if host in _OVERLEAF_HOSTS:
        return ProviderKind.OVERLEAF
    if host == "github.com" or host.endswith(".github.com"):
        return ProviderKind.GITHUB
    if match_self_hosted_instance(git_url, self_hosted_instances or []):
        return ProviderKind.SELFHOSTED_GITLAB
    if host == "gitlab.com" or host.endswith(".gitlab.com"):
        return ProviderKind.GITLAB
    return ProviderKind.GENERIC


def rewrite_git_url(provider: ProviderKind, git_url: str) -> str:
    """Clonable remote for ``git_url``. Overleaf project links become git remotes."""
    if provider is not ProviderKind.OVERLEAF:
        return git_url
    project = parse_overleaf_url(git_url)
    if project is None:
        logger.warning("Could not parse Overleaf URL %s; using it as-is", git_url)
        return git_url
    return project.git_url


class CredentialStore(Protocol):
    """Per-provider token stores. Every method returns None when nothing is stored."""

    async def github_token(self, user_id: str | None) -> str | None: ...

    async def gitlab_token(self, user_id: str | None) -> str | None: ...

    async def overleaf_credentials(self, user_id: str | None) -> ProviderAuth | None: ...

    async def self_hosted_instances(self, user_id: str | None) -> list[SelfHostedInstance]: ...


@dataclass
class StaticCredentialStore:
    """CredentialStore over plain dicts keyed by user id."""

    github: dict[str, str] = field(default_factory=dict)
    gitlab: dict[str, str] = field(default_factory=dict)
    overleaf: dict[str, ProviderAuth] = field(default_factory=dict)
    instances: dict[str, list[SelfHostedInstance]] = field(default_factory=dict)

    async def github_token(self, user_id):
        return self.github.get(user_id or "")

    async def gitlab_token(self, user_id):
        return self.gitlab.get(user_id or "")

    async def overleaf_credentials(self, user_id):
        return self.overleaf.get(user_id or "")

    async def self_hosted_instances(self, user_id):
        return list(self.instances.get(user_id or "", []))


async def resolve_auth(
    provider: ProviderKind,
    git_url: str,
    self_hosted_instances: list[SelfHostedInstance],
    user_id: str | None,
    store: CredentialStore,
) -> ProviderAuth | None:
    """Credentials for cloning ``git_url``, or None to try unauthenticated access."""
    try:
        if provider is ProviderKind.OVERLEAF:
            if parse_overleaf_url(git_url) is None:
                logger.warning("Not an Overleaf project URL: %s; continuing unauthenticated", git_url)
                return None
            return await store.overleaf_credentials(user_id)
        if provider is ProviderKind.GITHUB:
            token = await store.github_token(user_id)
            return ProviderAuth(username="x-access-token", password=token) if token else None
        if provider is ProviderKind.GITLAB:
            token = await store.gitlab_token(user_id)
            return ProviderAuth(username="oauth2", password=token) if token else None
        if provider is ProviderKind.SELFHOSTED_GITLAB:
            instance = match_self_hosted_instance(git_url, self_hosted_instances)
            return ProviderAuth(username="oauth2", password=instance.token) if instance else None
    except Exception:
        logger.warning("Credential lookup failed for %s; continuing unauthenticated", provider.value, exc_info=True)
    return None


def build_authenticated_url(git_url: str, auth: ProviderAuth | None) -> str:
    """``git_url`` with credentials embedded in the netloc (https remotes only)."""
    if auth is None or not auth.username or not auth.password:
        return git_url
    parts = urlsplit(git_url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return git_url
    # host[:port] as written, so IPv6 brackets survive; drops any existing userinfo
    host = parts.netloc.rpartition("@")[2]
    netloc = f"{quote(auth.username, safe='')}:{quote(auth.password, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
