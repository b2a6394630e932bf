"""Model download from the Hugging Face Hub."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from huggingface_hub import snapshot_download
from huggingface_hub.utils import GatedRepoError, RepositoryNotFoundError

from recurrent_decoder.exceptions import DownloadError

logger = logging.getLogger("recurrent_decoder")


def separate_model_name(path: str | Path) -> tuple[Path, str]:
    """Split ``<models_dir>/<organization>/<model>`` into its two parts.

    Args:
        path: Target directory whose last two components name the repository.

    Returns:
        Tuple of (models directory, ``"organization/model"``).

    Raises:
        ValueError: If *path* has fewer than three directory levels.
    """
    parts = str(path).rstrip("/").split("/")
    if len(parts) < 3:
        raise ValueError("Path must have at least three levels of directories")
    return Path("/".join(parts[:-2])), f"{parts[-2]}/{parts[-1]}"


def download_model(
    target_dir: str | Path,
    model_name: str,
    overwrite: bool = False,
    token: str | None = None,
) -> Path:
    """Download the snapshot of *model_name* into ``target_dir/model_name``.

    Args:
        target_dir: Root directory holding downloaded models.
        model_name: Hub repository id, ``"organization/model"``.
        overwrite: Download again if the directory already exists.
        token: Access token for gated or private repositories.

    Returns:
        The local model directory.

    Raises:
        DownloadError: If the repository cannot be fetched.
    """
    local_dir = Path(target_dir) / model_name
    if local_dir.is_dir() and not overwrite:
        logger.info("Model %s already exists at %s, skipping download", model_name, local_dir)
        return local_dir

    existed = local_dir.is_dir()
    Path(target_dir).mkdir(parents=True, exist_ok=True)
    logger.info("Downloading %s into %s", model_name, local_dir)
    try:
        snapshot_download(model_name, local_dir=str(local_dir), token=token)
    except Exception as exc:
        if not existed:
            shutil.rmtree(local_dir, ignore_errors=True)
        if isinstance(exc, GatedRepoError):
            raise DownloadError(
                f"{model_name!r} is a gated repository, pass an access token"
            ) from exc
        if isinstance(exc, RepositoryNotFoundError):
            raise DownloadError(f"Repository {model_name!r} not found on the Hub") from exc
        raise DownloadError(f"Failed to download {model_name!r}: {exc}") from exc
    return local_dir
