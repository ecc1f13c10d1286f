"""
Image reference helpers.
"""

import hashlib
from typing import List

DEFAULT_REGISTRY = "docker.io"
DEFAULT_NAMESPACE = "library"
DEFAULT_TAG = "latest"


def add_default_registry_if_missing(ref: str, default_registry: str = DEFAULT_REGISTRY,
                                    default_namespace: str = DEFAULT_NAMESPACE) -> str:
    """
    Prefix a reference with the default registry (and namespace for
    single-component names) when its first path segment is not a registry.

    A first segment counts as a registry when it contains "." or ":".
    """
    idx = ref.find("/")
    if idx == -1 or not any(c in ref[:idx] for c in ".:"):
        registry, remainder = default_registry, ref
    else:
        registry, remainder = ref[:idx], ref[idx + 1:]

    if registry == default_registry and "/" not in remainder:
        remainder = f"{default_namespace}/{remainder}"
    return f"{registry}/{remainder}"


def has_tag_or_digest(ref: str) -> bool:
    if "@" in ref:
        return True
    last = ref.rsplit("/", 1)[-1]
    return ":" in last


def normalize_image_ref(ref: str, default_registry: str = DEFAULT_REGISTRY,
                        default_namespace: str = DEFAULT_NAMESPACE) -> str:
    """
    Turn a possibly short reference into registry/namespace/repo:tag.

    >>> normalize_image_ref("busybox")
    'docker.io/library/busybox:latest'
    """
    full = add_default_registry_if_missing(ref, default_registry, default_namespace)
    if not has_tag_or_digest(full):
        full = f"{full}:{DEFAULT_TAG}"
    return full


def chain_id(diff_ids: List[str]) -> str:
    """
    Compute the chain ID of the top layer from the ordered layer diff IDs.

    chain(L0) = diff(L0); chain(Ln) = sha256(chain(Ln-1) + " " + diff(Ln)).
    """
    if not diff_ids:
        raise ValueError("image has no layers")
    current = diff_ids[0]
    for diff in diff_ids[1:]:
        current = "sha256:" + hashlib.sha256(f"{current} {diff}".encode()).hexdigest()
    return current
