import logging
import shutil
from pathlib import Path

import requests

from app.config import Settings
from app.errors import ArtifactError

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 60
CHUNK_SIZE = 1024 * 1024


def _is_lfs_pointer(path: Path) -> bool:
    if not path.exists() or path.stat().st_size >= 200:
        return False
    try:
        with open(path, "rb") as f:
            first = f.read(100).decode("utf-8", errors="ignore")
    except OSError:
        return False
    return first.strip().startswith("version https://git-lfs.github.com")


def _usable(path: Path) -> bool:
    return path.is_file() and not _is_lfs_pointer(path)


def download_file(url: str, path: Path, token: str | None = None) -> None:
    logger.info("Downloading %s from %s", path, url)
    headers = {"Accept": "application/octet-stream"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    tmp = path.with_name(path.name + ".part")
    try:
        with requests.get(url, headers=headers, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
            if not response.ok:
                raise ArtifactError(f"Failed to download {url}: {response.status_code}")
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
            tmp.replace(path)
    except requests.RequestException as e:
        raise ArtifactError(f"Failed to download {url}: {e}") from e
    finally:
        tmp.unlink(missing_ok=True)


def _download_from_hub(repo_id: str, path: Path, token: str | None) -> None:
    from huggingface_hub import hf_hub_download

    logger.info("Downloading %s from Hub repo %s", path.name, repo_id)
    try:
        cached = hf_hub_download(repo_id=repo_id, filename=path.name, token=token)
    except Exception as e:
        raise ArtifactError(f"Could not download {path.name} from {repo_id}: {e}") from e
    path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(cached, path)


def _ensure(path: Path, url: str | None, url_var: str, settings: Settings) -> None:
    if _usable(path):
        return
    if path.exists():
        logger.warning("%s is a Git LFS pointer; fetching the real file", path)
    if url:
        download_file(url, path, settings.github_token)
    elif settings.hf_repo_id:
        _download_from_hub(settings.hf_repo_id, path, settings.hf_token)
    else:
        raise ArtifactError(f"{path} not found and {url_var} environment variable not set")
    if not _usable(path):
        raise ArtifactError(f"Downloaded {path} is not a usable file")


def ensure_artifacts(settings: Settings) -> None:
    """Make sure the frozen graph and the class list exist locally, downloading them if needed."""
    logger.info("Checking model...")
    _ensure(Path(settings.model_path), settings.model_url, "MODEL_URL", settings)
    _ensure(Path(settings.class_list_path), settings.class_list_url, "CLASS_LIST_URL", settings)
