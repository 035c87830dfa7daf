"""Remembers which remote kernel each notebook last ran against."""

import hashlib
import json
import os
import pathlib
import tempfile
import typing as t

from jupyter_core.paths import jupyter_data_dir
from traitlets import Unicode, default
from traitlets.config import LoggingConfigurable


def notebook_key(notebook: t.Union[str, "os.PathLike[str]"]) -> str:
    """Stable key for a notebook, derived from where it is saved.

    Filesystem paths are made absolute and expressed as ``file://`` URIs so
    that a path and the URI of the same file share a key.
    """
    location = os.fspath(notebook)
    if "://" not in location:
        location = pathlib.Path(location).expanduser().resolve().as_uri()
    return hashlib.sha256(location.encode("utf-8")).hexdigest()


class PreferredRemoteKernelIdStore(LoggingConfigurable):
    """Notebook to kernel id mapping, persisted as a JSON file.

    Used when a notebook is reopened: if the kernel it last ran against is
    still alive it is preferred over starting a new one. Writes replace the
    previous entry outright; entries never expire.
    """

    storage_file = Unicode(
        config=True,
        help="""JSON file holding the preferred remote kernel of each notebook.""",
    )

    @default("storage_file")
    def _storage_file_default(self):
        return os.path.join(jupyter_data_dir(), "thunder", "preferred_kernels.json")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._records: t.Optional[t.Dict[str, str]] = None

    def get_preferred_kernel_id(self, notebook) -> t.Optional[str]:
        return self._load().get(notebook_key(notebook))

    def set_preferred_kernel_id(self, notebook, kernel_id: t.Optional[str]) -> None:
        """Associate ``notebook`` with ``kernel_id``; ``None`` forgets it.

        The in-memory records change only once the file has been replaced.
        """
        records = dict(self._load())
        key = notebook_key(notebook)
        if kernel_id is None:
            if records.pop(key, None) is None:
                return
        else:
            if records.get(key) == kernel_id:
                return
            records[key] = kernel_id
        self._save(records)
        self._records = records
        self.log.debug(f"Preferred remote kernel for {notebook} set to {kernel_id}")

    def on_execution_completed(self, notebook, kernel_id: str) -> None:
        """Host hook for a finished cell execution."""
        self.set_preferred_kernel_id(notebook, kernel_id)

    def select_preferred(self, notebook, available_kernel_ids: t.Iterable[str]) -> t.Optional[str]:
        """The notebook's preferred kernel if it is among the live ones."""
        preferred = self.get_preferred_kernel_id(notebook)
        if preferred is not None and preferred in set(available_kernel_ids):
            return preferred
        return None

    def _load(self) -> t.Dict[str, str]:
        if self._records is not None:
            return self._records

        records: t.Dict[str, str] = {}
        try:
            with open(self.storage_file, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            data = {}
        except (OSError, ValueError) as e:
            self.log.warning(f"Ignoring unreadable preferred kernel store {self.storage_file}: {e}")
            data = {}

        if isinstance(data, dict):
            records = {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}
        else:
            self.log.warning(f"Ignoring malformed preferred kernel store {self.storage_file}")

        self._records = records
        return records

    def _save(self, records: t.Dict[str, str]) -> None:
        directory = os.path.dirname(self.storage_file) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".preferred_kernels", suffix=".tmp")
        try:
            os.chmod(tmp_path, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=1, sort_keys=True)
            os.replace(tmp_path, self.storage_file)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
