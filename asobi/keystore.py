"""
Local storage for generated SSH private keys.
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class KeyStore:
    """Writes private keys under a directory with owner-only permissions."""

    def __init__(self, key_dir: str = ".ssh"):
        self.key_dir = Path(key_dir)

    def key_path(self, key_name: str) -> Path:
        return self.key_dir / f"{key_name}.pem"

    def write_private_key(self, key_name: str, material: str) -> Path:
        """
        Save key material as <key_dir>/<key_name>.pem with mode 0600.
        """
        self.key_dir.mkdir(parents=True, exist_ok=True)
        path = self.key_path(key_name)

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(material)
        os.chmod(path, 0o600)

        logger.info(f"Private key saved to {path}")
        return path

    def delete_private_key(self, key_name: str) -> Optional[Path]:
        """Delete the local key file if present; returns the removed path."""
        path = self.key_path(key_name)
        if not path.exists():
            return None

        path.unlink()
        logger.info(f"Local key file at '{path}' deleted")
        return path
