import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

APP_DIR = Path(__file__).resolve().parent
LOCAL_CACHE_PATH = Path(os.environ.get("LOCAL_CACHE_PATH", str(APP_DIR / "data" / "cultivation_save.json")))


class LocalSaveCache:
    """Single-key JSON store holding the same body as the remote save.

    Reads return the raw payload (or None when absent/unreadable); writes are
    synchronous, atomic via a temp file, and never raise.
    """

    def __init__(self, path: Union[Path, str] = LOCAL_CACHE_PATH) -> None:
        self.path = Path(path)
        self._tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")

    def read(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logging.exception("Failed to parse local save %s", self.path)
            return None
        if not isinstance(payload, dict):
            logging.warning("Local save %s is not an object; ignoring", self.path)
            return None
        return payload

    def write(self, payload: Dict[str, Any]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._tmp_path.write_text(json.dumps(payload, separators=(",", ":")), encoding="utf-8")
            os.replace(self._tmp_path, self.path)
        except (OSError, TypeError, ValueError):
            logging.exception("Failed to write local save %s", self.path)
            return False
        return True

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            logging.exception("Failed to remove local save %s", self.path)
