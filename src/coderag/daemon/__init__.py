"""CodeRAG daemon - file watching and service wiring."""

from coderag.daemon.service import CodeRagService
from coderag.daemon.watcher import FileWatcher

__all__ = [
    "CodeRagService",
    "FileWatcher",
]
