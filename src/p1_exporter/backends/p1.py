import asyncio
import logging

from p1_exporter.backends.base import Backend
from p1_exporter.dsmr.crc import validate
from p1_exporter.dsmr.decoder import decode
from p1_exporter.dsmr.errors import ChecksumMismatch, FramingError
from p1_exporter.dsmr.models import DecodeResult, RawFrame
from p1_exporter.dsmr.reader import DEFAULT_MAX_FRAME_SIZE, ByteStream, FrameReader, read_frames
from p1_exporter.state import MetricAggregator, Snapshot

logger = logging.getLogger(__name__)


class P1Backend(Backend):
    """Backend that reads DSMR telegrams from a P1 serial-to-network bridge."""

    def __init__(self, config: dict, aggregator: MetricAggregator | None = None) -> None:
        self._host: str = config["host"]
        self._port: int = config.get("port", 23)
        self._reconnect_delay: float = config.get("reconnect_delay", 5.0)
        self._read_timeout: float = config.get("read_timeout", 10.0)
        self._max_frame_size: int = config.get("max_frame_size", DEFAULT_MAX_FRAME_SIZE)
        self._aggregator = aggregator or MetricAggregator()
        self._task: asyncio.Task | None = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def start(self) -> None:
        self._task = asyncio.create_task(self._ingest_loop())
        logger.info(
            "P1 backend started, reading %s:%d (reconnect delay %.1fs)",
            self._host,
            self._port,
            self._reconnect_delay,
        )

    async def stop(self) -> None:
        # Frames are processed without awaiting, so cancellation only ever
        # lands while the loop waits on the socket or on the reconnect delay.
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("P1 backend stopped")

    def get_snapshot(self) -> Snapshot:
        return self._aggregator.snapshot()

    async def _ingest_loop(self) -> None:
        while True:
            try:
                reader, writer = await asyncio.open_connection(self._host, self._port)
            except OSError as exc:
                logger.warning(
                    "Failed to connect to P1 reader %s:%d: %s", self._host, self._port, exc
                )
            else:
                logger.info("Connected to P1 reader %s:%d", self._host, self._port)
                self._connected = True
                try:
                    await self.process_stream(reader)
                    logger.warning("P1 reader closed the connection")
                except asyncio.CancelledError:
                    raise
                except (OSError, asyncio.TimeoutError) as exc:
                    logger.warning("Failed to collect metrics: %r", exc)
                except Exception:
                    logger.exception("Telegram ingestion failed")
                finally:
                    self._connected = False
                    writer.close()
                    try:
                        await writer.wait_closed()
                    except OSError as exc:
                        logger.debug("Error while closing P1 connection: %r", exc)

            await asyncio.sleep(self._reconnect_delay)

    async def process_stream(self, stream: ByteStream) -> int:
        """Feed every telegram of ``stream`` into the metric state.

        Returns the number of frames applied once the stream ends. Transport
        errors propagate; bad frames and bad lines are logged and skipped.
        """
        applied = 0
        framer = FrameReader(self._max_frame_size)
        async for item in read_frames(stream, framer, read_timeout=self._read_timeout or None):
            if self.process_frame(item) is not None:
                applied += 1
        return applied

    def process_frame(self, item: RawFrame | FramingError) -> DecodeResult | None:
        """Validate, decode and apply one frame; returns None if it was dropped."""
        if isinstance(item, FramingError):
            logger.warning("Skipping frame: %s", item)
            self._aggregator.record_dropped("framing")
            return None

        try:
            body = validate(item)
        except ChecksumMismatch as exc:
            logger.warning("Dropping frame: %s", exc)
            self._aggregator.record_dropped("checksum")
            return None

        result = decode(body)
        for error in result.errors:
            logger.warning("Skipping line: %s", error)
        self._aggregator.apply(result.readings, result.timestamp, line_errors=len(result.errors))
        logger.debug(
            "Telegram applied: %d readings, %d line errors",
            len(result.readings),
            len(result.errors),
        )
        return result
