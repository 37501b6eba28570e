import os, uuid, shutil, logging

from .errors import WorkspaceError
from .models import RunWorkspace

logger = logging.getLogger(__name__)


def allocate_workspace(temp_root: str) -> RunWorkspace:
    """Pick a fresh run id and compute the workspace paths. No I/O."""
    run_id = str(uuid.uuid4())
    root = os.path.join(os.path.abspath(temp_root), run_id)
    return RunWorkspace(run_id=run_id, root=root)


def create_workspace(workspace: RunWorkspace) -> RunWorkspace:
    """Create the images/audios/clips tree. Refuses a directory that already exists."""
    try:
        os.makedirs(os.path.dirname(workspace.root), exist_ok=True)
        # exist_ok=False: a workspace is never reused between runs
        os.makedirs(workspace.root)
        for directory in (workspace.images_dir, workspace.audios_dir, workspace.clips_dir):
            os.makedirs(directory, exist_ok=True)
    except FileExistsError as e:
        raise WorkspaceError(f"workspace {workspace.root} already exists") from e
    except OSError as e:
        raise WorkspaceError(f"could not create workspace {workspace.root}: {e}") from e
    logger.info(f"Created workspace {workspace.root}")
    return workspace


def ensure_output_dir(path: str) -> str:
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise WorkspaceError(f"could not create output directory {path}: {e}") from e
    return os.path.abspath(path)


def cleanup_workspace(workspace: RunWorkspace):
    if not os.path.exists(workspace.root):
        return
    try:
        shutil.rmtree(workspace.root)
    except OSError as e:
        raise WorkspaceError(f"could not remove workspace {workspace.root}: {e}") from e
    logger.info(f"Removed workspace {workspace.root}")
