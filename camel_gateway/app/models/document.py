"""
Session identity and document coordinates
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

# Onshape substitutes this literally when an action URL is opened without a
# configuration.
CONFIGURATION_PLACEHOLDER = "{$configuration}"


@dataclass(eq=False)
class Identity:
    """
    OAuth credentials for one signed-in session

    Instances are shared by every request on the session; token refreshes
    mutate them in place.
    """

    access_token: str
    refresh_token: Optional[str]
    profile: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.profile.get("name") or self.profile.get("id") or "unknown"


class WorkspaceOrVersion(str, Enum):
    """Kind of document state a context points at"""

    WORKSPACE = "w"
    VERSION = "v"

    @classmethod
    def parse(cls, value: str) -> "WorkspaceOrVersion":
        lowered = value.lower()
        for kind in cls:
            if lowered in (kind.value, kind.name.lower()):
                return kind
        raise ValueError(f"Unknown workspace/version kind: {value}")


def normalize_configuration(configuration: Optional[str]) -> Optional[str]:
    """Map the host placeholder and empty strings to no configuration"""
    if configuration is None:
        return None
    configuration = configuration.strip()
    if not configuration or configuration == CONFIGURATION_PLACEHOLDER:
        return None
    return configuration


@dataclass(frozen=True)
class DocumentContext:
    """Coordinates of the Part Studio a script is evaluated against"""

    document_id: str
    workspace_or_version: WorkspaceOrVersion
    workspace_or_version_id: str
    element_id: str
    identity: Optional[Identity] = field(default=None, compare=False, repr=False)
    configuration: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "configuration", normalize_configuration(self.configuration))

    @property
    def element_path(self) -> str:
        return (
            f"d/{self.document_id}/{self.workspace_or_version.value}/"
            f"{self.workspace_or_version_id}/e/{self.element_id}"
        )
