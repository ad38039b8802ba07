"""
Native engine boundary

The engine is the only place the core touches storage or a machine-side
integration. FileSystemEngine writes artifacts to a directory;
InMemoryEngine keeps them in a dict for tests and dry runs.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Union

logger = logging.getLogger(__name__)


class NativeEngine(ABC):
    """Capability interface for initialisation and artifact storage"""

    name = "engine"

    def __init__(self):
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        if not self._initialized:
            self._open()
            self._initialized = True
            logger.info("%s engine initialized", self.name)

    def shutdown(self) -> None:
        if self._initialized:
            self._close()
            self._initialized = False
            logger.info("%s engine shut down", self.name)

    def _open(self) -> None:
        pass

    def _close(self) -> None:
        pass

    @abstractmethod
    def write_artifact(self, name: str, content: str) -> str:
        """Store one artifact and return where it went; raises OSError on failure"""


class FileSystemEngine(NativeEngine):
    """Writes artifacts as files under a root directory"""

    name = "filesystem"

    def __init__(self, root: Union[str, Path]):
        super().__init__()
        self.root = Path(root)

    def _open(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def write_artifact(self, name: str, content: str) -> str:
        target = self.root / name
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(content)
            os.replace(tmp, target)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        logger.debug("Wrote %s (%d bytes)", target, len(content))
        return str(target)


class InMemoryEngine(NativeEngine):
    """
    Keeps artifacts in memory

    fail_writes makes the next N writes raise OSError, for exercising the
    export retry path.
    """

    name = "in-memory"

    def __init__(self, fail_writes: int = 0):
        super().__init__()
        self.artifacts: Dict[str, str] = {}
        self.fail_writes = fail_writes

    def write_artifact(self, name: str, content: str) -> str:
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise OSError(f"simulated write failure for {name}")
        self.artifacts[name] = content
        return f"memory://{name}"
