"""
Part uploader.

Owns one gzip-compressed object upload to the raw bucket. Bytes written by
the dump engine are compressed and pushed into a bounded channel; a worker
thread pulls from the channel and streams it to S3 with boto3's managed
(multipart) transfer. A full channel blocks the writer, which is what bounds
the dump engine's memory.
"""

import queue
import threading
import zlib
from concurrent.futures import Executor, Future
from typing import Optional

from boto3.s3.transfer import TransferConfig

from datalake_sync.config import Config
from datalake_sync.errors import StreamFailure
from datalake_sync.utils.logging_utils import log_progress

# gzip container (header + trailer) around a deflate stream
GZIP_WBITS = 16 + zlib.MAX_WBITS
CONTENT_TYPE = "application/gzip"

_EOF = object()


class _ChannelReader:
    """File-like view of the channel, consumed by boto3's transfer manager."""

    def __init__(self, channel: "queue.Queue", aborted: threading.Event, poll_interval: float):
        self._channel = channel
        self._aborted = aborted
        self._poll_interval = poll_interval
        self._buffer = bytearray()
        self._eof = False

    def readable(self) -> bool:
        return True

    def _next_item(self):
        while True:
            try:
                return self._channel.get(timeout=self._poll_interval)
            except queue.Empty:
                if self._aborted.is_set():
                    raise StreamFailure("Upload aborted by the writer")

    def read(self, size: int = -1) -> bytes:
        while not self._eof and (size is None or size < 0 or len(self._buffer) < size):
            item = self._next_item()
            if item is _EOF:
                self._eof = True
                break
            self._buffer.extend(item)

        if size is None or size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data


class PartUploader:
    """
    One rotation part: open(key) -> write(bytes)... -> close() -> Future.

    write() blocks while the channel is full and raises StreamFailure as soon
    as the background upload has stopped consuming.
    """

    def __init__(
        self,
        s3_client,
        bucket: str,
        executor: Executor,
        section: str = "Part Uploader",
        *,
        chunk_size: int = Config.UPLOAD_CHUNK_SIZE,
        max_buffered_chunks: int = Config.UPLOAD_BUFFER_CHUNKS,
        compression_level: int = Config.COMPRESSION_LEVEL,
        poll_interval: float = 0.1,
    ):
        self.s3_client = s3_client
        self.bucket = bucket
        self.executor = executor
        self.section = section
        self.chunk_size = chunk_size
        self.max_buffered_chunks = max_buffered_chunks
        self.compression_level = compression_level
        self.poll_interval = poll_interval

        self.key: Optional[str] = None
        self.bytes_written = 0
        self.bytes_uploaded = 0

        self._channel: Optional[queue.Queue] = None
        self._compressor = None
        self._pending = bytearray()
        self._future: Optional[Future] = None
        self._aborted = threading.Event()
        self._progress_lock = threading.Lock()
        self._next_progress_log = Config.UPLOAD_PROGRESS_LOG_BYTES

    @property
    def is_open(self) -> bool:
        return self._compressor is not None

    def open(self, key: str) -> "PartUploader":
        """Start the upload of `key` and return self as the write sink."""
        if self._future is not None:
            raise RuntimeError(f"Part uploader already used for {self.key}")

        self.key = key
        self._channel = queue.Queue(maxsize=self.max_buffered_chunks)
        self._compressor = zlib.compressobj(self.compression_level, zlib.DEFLATED, GZIP_WBITS)
        self._future = self.executor.submit(self._upload)
        return self

    def write(self, data: bytes) -> None:
        """Compress and enqueue bytes; blocks while the channel is full."""
        self._ensure_open()
        self._check_upload()
        self.bytes_written += len(data)
        self._buffer(self._compressor.compress(data))

    def close(self) -> Future:
        """
        Finalize the gzip stream and hand the rest to the upload.

        Returns:
            Future resolving to the key once S3 confirms the object
        """
        self._ensure_open()
        self._buffer(self._compressor.flush())
        self._compressor = None
        if self._pending:
            self._put(bytes(self._pending))
            self._pending.clear()
        self._put(_EOF)
        return self._future

    def abort(self) -> None:
        """Stop the upload without completing the object."""
        self._aborted.set()
        self._compressor = None
        if self._future is not None:
            self._future.cancel()

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise RuntimeError(f"Part {self.key} is not open for writes")

    def _check_upload(self) -> None:
        # Before close the upload can only have finished by failing
        if self._future.done():
            raise self._failure()

    def _failure(self) -> StreamFailure:
        if self._future.cancelled():
            return StreamFailure(f"Upload of {self.key} was cancelled")
        cause = self._future.exception()
        error = StreamFailure(f"Upload of {self.key} failed: {cause}")
        error.__cause__ = cause
        return error

    def _buffer(self, compressed: bytes) -> None:
        if not compressed:
            return
        self._pending.extend(compressed)
        while len(self._pending) >= self.chunk_size:
            chunk = bytes(self._pending[: self.chunk_size])
            del self._pending[: self.chunk_size]
            self._put(chunk)

    def _put(self, item) -> None:
        while True:
            try:
                self._channel.put(item, timeout=self.poll_interval)
                return
            except queue.Full:
                if self._future.done():
                    raise self._failure()

    def _on_progress(self, bytes_amount: int) -> None:
        with self._progress_lock:
            self.bytes_uploaded += bytes_amount
            if self.bytes_uploaded >= self._next_progress_log:
                self._next_progress_log += Config.UPLOAD_PROGRESS_LOG_BYTES
                log_progress(self.section, f"Upload {self.key} progress: {self.bytes_uploaded} bytes")

    def _transfer_config(self) -> TransferConfig:
        config = TransferConfig(multipart_chunksize=self.chunk_size)
        # Not a constructor argument; lives on the s3transfer base config
        config.max_in_memory_upload_chunks = self.max_buffered_chunks
        return config

    def _upload(self) -> str:
        reader = _ChannelReader(self._channel, self._aborted, self.poll_interval)
        self.s3_client.upload_fileobj(
            reader,
            self.bucket,
            self.key,
            ExtraArgs={"ContentType": CONTENT_TYPE},
            Callback=self._on_progress,
            Config=self._transfer_config(),
        )
        log_progress(self.section, f"Uploaded {self.key} ({self.bytes_uploaded} compressed bytes)")
        return self.key
