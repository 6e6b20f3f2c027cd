"""HTTP client that ships recorded chunks to the ingestion endpoint."""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


class ChunkUploader:
    """Uploads chunks for one (session, participant) pair.

    Failures are logged and reported in the returned dict; nothing is
    raised back into the recorder loop.
    """

    def __init__(self, base_url: str, session_key: str, participant_id: str,
                 display_name: Optional[str] = None, container: str = "webm",
                 timeout: float = 30.0):
        """Initialize uploader.

        Args:
            base_url: Server root, e.g. http://localhost:5000
            session_key: Session the chunks belong to
            participant_id: Connection id of this participant
            display_name: Name stored alongside the chunks
            container: Chunk container; sets filename and content type
            timeout: Per-request timeout in seconds
        """
        self.upload_url = f"{base_url.rstrip('/')}/upload"
        self.session_key = session_key
        self.participant_id = participant_id
        self.display_name = display_name
        self.container = container
        self.timeout = timeout

        self.uploaded = 0
        self.failed = 0

        logger.info(f"ChunkUploader initialized for {participant_id} in {session_key}: {self.upload_url}")

    def _params(self) -> Dict[str, str]:
        params = {"roomId": self.session_key, "userId": self.participant_id}
        if self.display_name:
            params["userName"] = self.display_name
        return params

    async def upload(self, data: bytes) -> Dict[str, Any]:
        """Upload one chunk.

        Returns:
            Server response; {"status": "error", ...} on any failure
        """
        form = aiohttp.FormData()
        form.add_field("audio", data,
                       filename=f"chunk.{self.container}",
                       content_type=f"audio/{self.container}")

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.upload_url, params=self._params(), data=form) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Chunk upload rejected: {response.status} - {error_text}")
                        self.failed += 1
                        return {"status": "error", "httpStatus": response.status, "message": error_text}

                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Chunk upload failed: {e}")
            self.failed += 1
            return {"status": "error", "message": str(e)}

        self.uploaded += 1
        logger.debug(f"Chunk uploaded: {result.get('file')} (seq {result.get('sequence')})")
        return result

    def upload_chunk(self, data: bytes) -> Dict[str, Any]:
        """Blocking upload for use from the recorder thread."""
        return asyncio.run(self.upload(data))

    __call__ = upload_chunk
