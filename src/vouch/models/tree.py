"""Tree identity models."""

import hashlib

from pydantic import BaseModel, Field


def combine_identities(components: dict[str, str]) -> str:
    """Order-insensitive SHA-256 over ``{path: tree_hash}`` pairs.

    Raises:
        ValueError: If no components are given
    """
    if not components:
        raise ValueError("Composite identity needs at least one component")
    sha = hashlib.sha256()
    for path in sorted(components):
        sha.update(f"{path}\0{components[path]}\n".encode())
    return sha.hexdigest()


class TreeHashResult(BaseModel):
    """Identity of a working copy, with optional submodule identities.

    Attributes:
        hash: Tree object id of the repository's full working state.
        submodule_hashes: Identity of each initialized submodule, by path.
        deterministic: False for the placeholder used outside git; such
            identities must never be used as cache keys.
    """

    hash: str = Field(description="Parent repository tree identity")
    submodule_hashes: dict[str, str] | None = Field(
        default=None, description="Submodule tree identities keyed by path"
    )
    deterministic: bool = Field(default=True, description="False outside a git working copy")

    @property
    def composite(self) -> str:
        """Single identity covering the parent and every submodule.

        Without submodules this is the parent hash itself.
        """
        if not self.submodule_hashes:
            return self.hash
        return combine_identities({".": self.hash, **self.submodule_hashes})
