"""Resolution of the host context a session is tracked in"""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .models import EnvironmentEntry

logger = logging.getLogger(__name__)

UNKNOWN_ENVIRONMENT = 'unknown'
DEFAULT_PROJECT = 'No Project'


@dataclass(frozen=True)
class HostContext:
    """What the host knows about the open workspace"""
    workspace: Optional[str] = None
    remote_name: str = 'local'
    project: Optional[str] = None

    @classmethod
    def from_directory(cls, directory: Optional[str] = None, remote_name: str = 'local') -> 'HostContext':
        """Build a context for a local directory (defaults to the current one)"""
        path = Path(directory).expanduser().resolve() if directory else Path.cwd()
        return cls(workspace=str(path), remote_name=remote_name)

    def project_name(self) -> str:
        """Display name of the tracked project"""
        if self.project:
            return self.project
        if self.workspace:
            return Path(self.workspace).name or self.workspace
        return DEFAULT_PROJECT


def environment_id(workspace: str, remote_name: str) -> str:
    """Stable id for a (workspace, remote) pair"""
    digest = hashlib.sha256(f"{remote_name}:{workspace}".encode('utf-8'))
    return digest.hexdigest()[:16]


def resolve_environment(context: HostContext, now: int) -> Optional[EnvironmentEntry]:
    """
    Resolve the environment for a host context

    Returns:
        EnvironmentEntry, or None when no workspace is open
    """
    if not context.workspace:
        return None

    return EnvironmentEntry(
        id=environment_id(context.workspace, context.remote_name),
        workspace_path=context.workspace,
        remote_name=context.remote_name,
        created_at=now,
        last_access=now
    )


def resolve_environment_id(context: HostContext, now: int) -> str:
    """Environment id for a context, or the placeholder when unresolved"""
    environment = resolve_environment(context, now)
    if environment is None:
        logger.warning("No workspace open, using placeholder environment id")
        return UNKNOWN_ENVIRONMENT
    return environment.id
