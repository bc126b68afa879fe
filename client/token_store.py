import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_PATH = Path.home() / ".finance_tracker" / "session.json"


class TokenStore:
    """Conserve le jeton de session dans un fichier local"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else DEFAULT_PATH

    def load(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8")).get("token")
        except (OSError, ValueError) as e:
            logger.warning(f"Fichier de session illisible ({self.path}): {str(e)}")
            return None

    def save(self, token: str):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"token": token}), encoding="utf-8")

    def clear(self):
        if self.path.exists():
            self.path.unlink()
