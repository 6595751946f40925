"""
Pexels Photo Agent - stock photo search for the `stockPhoto` image strategy.
Keyword queries are tried in order, narrowest first.
"""

import os
import threading
import requests
from typing import Optional, List, Dict, Any, Set

from utils.constants import PEXELS_PHOTO_SEARCH_URL
from utils.logger import get_logger
logger = get_logger("pexels_agent")


class PexelsAgent:
    """Search and download photos through the Pexels API"""

    def __init__(self, api_key: str = None, timeout: int = 30):
        self.api_key = api_key or os.getenv("PEXELS_API_KEY")
        self.timeout = timeout
        # Avoid reusing the same photo within one process
        self.used_photo_ids: Set[int] = set()
        self._used_lock = threading.Lock()

    def search_photos(
        self,
        query: str,
        per_page: int = 15,
        orientation: str = "portrait",
    ) -> List[Dict[str, Any]]:
        """Call the Pexels photo search API."""
        if not self.api_key:
            raise RuntimeError("PEXELS_API_KEY is not set")

        headers = {"Authorization": self.api_key}
        params = {
            "query": query,
            "per_page": per_page,
            "orientation": orientation,
        }

        resp = requests.get(
            PEXELS_PHOTO_SEARCH_URL,
            headers=headers,
            params=params,
            timeout=self.timeout,
        )
        if not resp.ok:
            raise RuntimeError(f"Pexels search failed: HTTP {resp.status_code}")

        return resp.json().get("photos", [])

    def download_photo(self, photo: Dict[str, Any], out_path: str) -> str:
        """Download the portrait rendition (falls back to the original)."""
        src = photo.get("src") or {}
        url = src.get("portrait") or src.get("large2x") or src.get("original")
        if not url:
            raise RuntimeError(f"Pexels photo {photo.get('id')} has no downloadable source")

        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        resp = requests.get(url, stream=True, timeout=self.timeout)
        if not resp.ok:
            raise RuntimeError(f"Pexels download failed: HTTP {resp.status_code}")

        with open(out_path, "wb") as f:
            for chunk in resp.iter_content(chunk_size=8192):
                f.write(chunk)

        if os.path.getsize(out_path) == 0:
            raise RuntimeError("Pexels download returned an empty file")
        return out_path

    def build_queries(self, keywords: List[str]) -> List[str]:
        """All keywords first, then progressively shorter prefixes."""
        queries = []
        for n in range(len(keywords), 0, -1):
            query = " ".join(keywords[:n])
            if query and query not in queries:
                queries.append(query)
        return queries

    def fetch_photo(self, keywords: List[str], out_path: str, orientation: str = "portrait") -> str:
        """
        Try each query until a photo downloads.

        Args:
            keywords: Content words, most relevant first
            out_path: Destination file
            orientation: "portrait" for vertical video

        Returns:
            Downloaded file path

        Raises:
            RuntimeError: no keywords, no results, or every download failed
        """
        queries = self.build_queries(keywords)
        if not queries:
            raise RuntimeError("No keywords to search for")

        last_error: Optional[Exception] = None
        for qi, query in enumerate(queries):
            photos = self.search_photos(query, orientation=orientation)
            if not photos:
                continue

            with self._used_lock:
                fresh = [p for p in photos if p.get("id") not in self.used_photo_ids] or photos

            for photo in fresh[:3]:
                try:
                    result = self.download_photo(photo, out_path)
                except (RuntimeError, requests.RequestException) as e:
                    last_error = e
                    continue
                photo_id = photo.get("id")
                if photo_id:
                    with self._used_lock:
                        self.used_photo_ids.add(photo_id)
                logger.info(f"    [Pexels] Found with query #{qi + 1}: '{query}' (id={photo_id})")
                return result

        if last_error is not None:
            raise RuntimeError(f"Pexels downloads failed: {last_error}")
        raise RuntimeError(f"No Pexels photos for: {', '.join(queries)}")
