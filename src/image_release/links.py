"""Linking pushed images to their release records, and browseable URLs."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from src.image_release.models import ExternalUrl, ImageReference, RegistryTarget

logger = logging.getLogger(__name__)


@runtime_checkable
class LinkPublisher(Protocol):
    """Registers an image against the commit it was built from."""

    async def publish(
        self, owner: str, repo: str, sha: str, image: str, workspace_id: str
    ) -> bool:
        ...


class NoopLinkPublisher:
    """Publisher used when no link webhook is configured."""

    async def publish(
        self, owner: str, repo: str, sha: str, image: str, workspace_id: str
    ) -> bool:
        logger.info("No link webhook configured; not linking %s", image)
        return True


class HttpLinkPublisher:
    """Posts a ``link-image`` event to a webhook.

    Args:
        url_template: Webhook URL; ``{workspace_id}`` is substituted.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use ``MockTransport``).
    """

    def __init__(
        self,
        url_template: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url_template = url_template
        self.timeout = timeout
        self._transport = transport

    async def publish(
        self, owner: str, repo: str, sha: str, image: str, workspace_id: str
    ) -> bool:
        url = self.url_template.format(workspace_id=workspace_id)
        payload: dict[str, Any] = {
            "git": {"owner": owner, "repo": repo, "sha": sha},
            "docker": {"image": image},
            "type": "link-image",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Linking image %s failed: %s", image, exc)
            return False
        if resp.status_code >= 400:
            logger.warning(
                "Linking image %s failed: status %d from %s",
                image, resp.status_code, url,
            )
            return False
        return True


def derive_external_urls(
    images: ImageReference, registries: list[RegistryTarget]
) -> list[ExternalUrl]:
    """Map pushed tags to human-facing URLs, de-duplicated by URL.

    For each tag of a registry that defines ``display_url`` or
    ``browse_path``, the push URL is swapped for the display URL and, when a
    browse path is set, the ``:<tag>`` suffix is replaced by it.  The browse
    path may reference ``{name}`` and ``{tag}``.
    """
    urls: list[ExternalUrl] = []
    seen: set[str] = set()
    for registry in registries:
        if not registry.display_url and not registry.browse_path:
            continue
        display = (registry.display_url or registry.url).rstrip("/")
        for tag in images.tags_for(registry):
            remainder = tag[len(registry.url):]
            if registry.browse_path:
                path, _, version = remainder.rpartition(":")
                url = display + path + registry.browse_path.format(
                    name=images.name, tag=version
                )
            else:
                url = display + remainder
            if url in seen:
                continue
            seen.add(url)
            urls.append(ExternalUrl(url=url, label=registry.label))
    return urls
