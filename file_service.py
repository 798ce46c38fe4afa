"""
Local file URLs for uploaded blobs (materials, submissions, videos).
A URL stays valid for the life of the process until it is released.
"""

import os
import secrets
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

URL_PREFIX = "/files/"


class FileStore:
    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = upload_dir or os.getenv("UPLOAD_DIR", "uploads")
        os.makedirs(self.upload_dir, exist_ok=True)
        # token -> (path on disk, original file name, content type)
        self.files: Dict[str, Tuple[str, str, str]] = {}

    def create_url(self, data: bytes, file_name: str, content_type: str = "application/octet-stream") -> str:
        token = secrets.token_urlsafe(16)
        path = os.path.join(self.upload_dir, token)
        with open(path, "wb") as f:
            f.write(data)
        self.files[token] = (path, file_name, content_type)
        return URL_PREFIX + token

    def _token(self, url: str) -> Optional[str]:
        if not url or not url.startswith(URL_PREFIX):
            return None
        return url[len(URL_PREFIX):]

    def open(self, url: str) -> Optional[Tuple[str, str, str]]:
        """Returns (path, file_name, content_type) for a live URL, else None."""
        token = self._token(url)
        if token is None:
            return None
        return self.files.get(token)

    def release(self, url: str) -> bool:
        token = self._token(url)
        entry = self.files.pop(token, None) if token else None
        if entry is None:
            return False
        try:
            os.remove(entry[0])
        except FileNotFoundError:
            pass
        return True
