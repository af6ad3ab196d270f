import logging
import os
import secrets
import shutil

from fastapi import Request, UploadFile
from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


class DiskStorage:
    """Stores uploaded dish images in a local folder."""

    def __init__(self, upload_folder: str):
        self.upload_folder = upload_folder
        os.makedirs(self.upload_folder, exist_ok=True)

    def path_for(self, filename: str) -> str:
        return os.path.join(self.upload_folder, filename)

    async def save_file(self, upload: UploadFile) -> str:
        original = os.path.basename(upload.filename or "image")
        filename = f"{secrets.token_hex(10)}-{original}"
        await run_in_threadpool(self._write, upload, self.path_for(filename))
        logger.info(f"Stored image {filename}")
        return filename

    async def delete_file(self, filename: str) -> None:
        try:
            await run_in_threadpool(os.remove, self.path_for(filename))
        except FileNotFoundError:
            return
        logger.info(f"Removed image {filename}")

    @staticmethod
    def _write(upload: UploadFile, path: str):
        upload.file.seek(0)
        with open(path, "wb") as out:
            shutil.copyfileobj(upload.file, out)


def get_storage(request: Request) -> DiskStorage:
    return request.app.state.storage
