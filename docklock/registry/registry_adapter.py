"""
Registry client for the Docker Registry HTTP API V2.

Resolves image tags to manifest digests with a HEAD request on the manifest
endpoint. Works with Docker Hub, GHCR and other OCI-compliant registries by
discovering bearer token endpoints from the WWW-Authenticate header.
"""

import aiohttp
import asyncio
import base64
import hashlib
import logging
import re
from typing import Callable, Dict, Optional, Tuple

from docklock.errors import RegistryError
from docklock.generate.image import DIGEST_PREFIX
from docklock.registry.base import RegistryClient
from docklock.registry.credentials import DOCKER_HUB_REGISTRY, registry_host

logger = logging.getLogger(__name__)

MANIFEST_ACCEPT = (
    "application/vnd.docker.distribution.manifest.v2+json,"
    "application/vnd.docker.distribution.manifest.list.v2+json,"
    "application/vnd.oci.image.manifest.v1+json,"
    "application/vnd.oci.image.index.v1+json"
)

INSECURE_HOSTS = ("localhost", "127.0.0.1")

CredentialsLookup = Callable[[str], Optional[Dict[str, str]]]


def encode_basic_auth(auth: Dict[str, str]) -> str:
    """
    Encode username:password as Basic authentication header.

    Returns:
        Basic auth header string (e.g., "Basic dXNlcjpwYXNz")
    """
    credentials = f"{auth['username']}:{auth['password']}"
    encoded = base64.b64encode(credentials.encode()).decode()
    return f"Basic {encoded}"


def parse_www_authenticate(header: str) -> Optional[Tuple[str, Dict[str, str]]]:
    """
    Parse a WWW-Authenticate header into its scheme and parameters.

    Example:
        Input: 'Bearer realm="https://ghcr.io/token",service="ghcr.io",scope="repository:user/app:pull"'
        Output: ("bearer", {"realm": "https://ghcr.io/token", "service": "ghcr.io",
                 "scope": "repository:user/app:pull"})
    """
    if not header:
        return None

    scheme, _, params_str = header.strip().partition(" ")
    params = {key: value for key, value in re.findall(r'(\w+)="([^"]*)"', params_str)}
    return scheme.lower(), params


class RegistryV2Client(RegistryClient):
    """
    Client for one or more V2 registries.

    The registry host is taken from the image name, so a single client with
    an empty prefix can serve every registry.
    """

    def __init__(
        self,
        prefix: str = "",
        credentials: Optional[CredentialsLookup] = None,
        timeout: int = 30,
    ):
        """
        Args:
            prefix: Image name prefix this client serves
            credentials: Returns {username, password} for an image name, or None
            timeout: Total timeout per HTTP request, in seconds
        """
        self.prefix = prefix
        self._credentials = credentials or (lambda name: None)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None
        self._tokens: Dict[str, str] = {}  # Cache auth headers per registry:repository

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def parse_image_name(name: str) -> Tuple[str, str]:
        """
        Split an image name into registry and repository.

        Examples:
            nginx → (docker.io, library/nginx)
            ghcr.io/user/app → (ghcr.io, user/app)
            myregistry.com:5000/app → (myregistry.com:5000, app)
        """
        registry = registry_host(name)
        repository = name
        if registry != DOCKER_HUB_REGISTRY or name.split("/", 1)[0].lower() == DOCKER_HUB_REGISTRY:
            repository = name.split("/", 1)[1] if "/" in name else name

        # Docker Hub uses "library/" prefix for official images
        if registry == DOCKER_HUB_REGISTRY and "/" not in repository:
            repository = f"library/{repository}"

        return registry, repository

    @staticmethod
    def normalize_registry_url(registry: str) -> str:
        """
        Normalize registry host to a base URL.

        Examples:
            docker.io → https://registry.hub.docker.com
            localhost:5000 → http://localhost:5000
        """
        if registry == DOCKER_HUB_REGISTRY:
            return "https://registry.hub.docker.com"
        if registry.split(":", 1)[0] in INSECURE_HOSTS:
            return f"http://{registry}"
        return f"https://{registry}"

    async def digest(self, name: str, tag: str) -> str:
        registry, repository = self.parse_image_name(name)
        url = f"{self.normalize_registry_url(registry)}/v2/{repository}/manifests/{tag}"
        image_line = f"{name}:{tag}"

        try:
            status, headers, _ = await self._request("HEAD", url, registry, repository, name)
            if status == 200 and headers.get("Docker-Content-Digest"):
                digest = headers["Docker-Content-Digest"]
            elif status == 200:
                # Some registries only send the digest header on GET
                status, headers, body = await self._request("GET", url, registry, repository, name)
                if status != 200:
                    raise RegistryError(self._status_message(image_line, status))
                digest = headers.get("Docker-Content-Digest") or DIGEST_PREFIX + hashlib.sha256(body).hexdigest()
            else:
                raise RegistryError(self._status_message(image_line, status))
        except asyncio.TimeoutError:
            raise RegistryError(f"timeout getting digest for '{image_line}' from {registry}")
        except aiohttp.ClientError as e:
            raise RegistryError(f"failed to get digest for '{image_line}' from {registry}: {e}")

        if digest.startswith(DIGEST_PREFIX):
            digest = digest[len(DIGEST_PREFIX):]
        logger.debug(f"Resolved {image_line} → {digest[:16]}...")
        return digest

    @staticmethod
    def _status_message(image_line: str, status: int) -> str:
        if status == 401:
            return f"authentication failed for '{image_line}'"
        if status == 404:
            return f"image not found: '{image_line}'"
        if status == 429:
            return f"rate limited by registry while resolving '{image_line}'"
        return f"registry returned {status} for '{image_line}'"

    async def _request(
        self,
        method: str,
        url: str,
        registry: str,
        repository: str,
        name: str,
    ) -> Tuple[int, Dict[str, str], bytes]:
        """
        Send a manifest request, authenticating once on a 401 challenge.

        Returns:
            (status, headers, body); body is empty for HEAD
        """
        cache_key = f"{registry}:{repository}"
        session = self._get_session()

        for attempt in range(2):
            headers = {"Accept": MANIFEST_ACCEPT}
            if cache_key in self._tokens:
                headers["Authorization"] = self._tokens[cache_key]

            async with session.request(method, url, headers=headers) as response:
                body = await response.read() if method == "GET" else b""
                if response.status != 401 or attempt == 1:
                    return response.status, dict(response.headers), body
                challenge = response.headers.get("WWW-Authenticate", "")

            authorization = await self._authenticate(challenge, name, registry)
            if authorization is None:
                return 401, {}, b""
            self._tokens[cache_key] = authorization

        return 401, {}, b""

    async def _authenticate(self, challenge: str, name: str, registry: str) -> Optional[str]:
        """
        Build an Authorization header value for a 401 challenge.

        Bearer challenges fetch a token from the realm (with basic credentials
        if configured). Basic challenges use the configured credentials.
        """
        auth = self._credentials(name)
        parsed = parse_www_authenticate(challenge)

        if parsed is None:
            logger.warning(f"Registry {registry} returned 401 but no WWW-Authenticate header")
            return encode_basic_auth(auth) if auth else None

        scheme, params = parsed
        if scheme == "basic":
            return encode_basic_auth(auth) if auth else None

        realm = params.get("realm")
        if scheme != "bearer" or not realm:
            logger.warning(f"Unexpected WWW-Authenticate for {registry}: {challenge[:40]}")
            return None

        query = {}
        if params.get("service"):
            query["service"] = params["service"]
        if params.get("scope"):
            query["scope"] = params["scope"]

        headers = {}
        if auth:
            headers["Authorization"] = encode_basic_auth(auth)

        async with self._get_session().get(realm, params=query, headers=headers) as response:
            if response.status != 200:
                text = await response.text()
                raise RegistryError(
                    f"token request to {realm} failed with status {response.status}: {text[:200]}"
                )
            try:
                data = await response.json(content_type=None)
            except ValueError as e:
                raise RegistryError(f"token endpoint {realm} returned invalid JSON: {e}")

        if not isinstance(data, dict):
            raise RegistryError(f"token endpoint {realm} returned an unexpected response")
        token = data.get("token") or data.get("access_token")
        if not token:
            raise RegistryError(f"token endpoint {realm} returned 200 but no token in response")

        logger.debug(f"Obtained token from {realm}")
        return f"Bearer {token}"
