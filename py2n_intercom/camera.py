"""Camera streaming for 2N Intercom (snapshot + SRTP sessions via ffmpeg).

A controller (e.g. a HomeKit hub) streams in two steps:

1. prepare: it announces its address, ports and SRTP keys; we pick SSRCs,
   store a pending session and echo the transport parameters back.
2. start: it selects resolution/fps/bitrate; we spawn ffmpeg to pull the
   device RTSP stream and push SRTP to the controller.

stop may arrive at any point and is always safe.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
from enum import Enum
import logging
import os
import re
import shutil
import signal

from .api import TwoNClient
from .const import (
    DEFAULT_SNAPSHOT_HEIGHT,
    DEFAULT_SNAPSHOT_WIDTH,
    DEFAULT_VIDEO_CODEC,
    FFMPEG_BINARY,
    FFMPEG_PATH_ENV,
    RTP_PACKET_SIZE,
    SRTP_CRYPTO_SUITES,
    VIDEO_PAYLOAD_TYPE,
)

_LOGGER = logging.getLogger(__name__)

_TERMINATE_TIMEOUT = 5.0


def _redact_url(url: str) -> str:
    return re.sub(r":[^:@/]+@", ":***@", url)


def generate_ssrc() -> int:
    """Return a random synchronisation source identifier."""
    return int.from_bytes(os.urandom(3), byteorder="big")


class StreamSessionError(Exception):
    """Raised when a stream operation does not match the session lifecycle."""


@dataclass(slots=True)
class SrtpEndpoint:
    """One negotiated media leg (video or audio)."""

    port: int
    ssrc: int
    crypto_suite: int
    key_material: bytes

    @property
    def srtp_suite(self) -> str | None:
        return SRTP_CRYPTO_SUITES.get(self.crypto_suite)

    @property
    def srtp_params(self) -> str:
        return base64.b64encode(self.key_material).decode("ascii")


@dataclass(slots=True)
class StreamEndpoints:
    """What prepare hands back for relaying to the controller."""

    session_id: str
    address: str
    video: SrtpEndpoint
    audio: SrtpEndpoint | None = None


@dataclass(slots=True)
class VideoParams:
    width: int
    height: int
    fps: int
    max_bitrate: int  # kbps
    profile: str = "baseline"
    level: str = "3.1"


@dataclass(slots=True)
class AudioParams:
    codec: str = "opus"
    sample_rate: int = 16  # kHz
    max_bitrate: int = 24  # kbps


class ProcessState(Enum):
    RUNNING = "running"
    EXITED_CLEAN = "exited_clean"
    EXITED_ERROR = "exited_error"
    KILLED = "killed"


class StreamProcess:
    """An ffmpeg child process owned by one stream session."""

    def __init__(self, session_id: str, process: asyncio.subprocess.Process) -> None:
        self.session_id = session_id
        self._process = process
        self.state = ProcessState.RUNNING
        self.exit_code: int | None = None
        self.signal: int | None = None
        self._monitor = asyncio.create_task(self._monitor_output(), name=f"py2n_intercom-ffmpeg-{session_id}")

    @classmethod
    async def async_spawn(cls, session_id: str, cmd: list[str]) -> StreamProcess:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        return cls(session_id, process)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def is_running(self) -> bool:
        return self.state is ProcessState.RUNNING

    def _log_output(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return
        if "error" in line.lower():
            _LOGGER.warning("[%s] FFmpeg: %s", self.session_id, line)
        else:
            _LOGGER.debug("[%s] FFmpeg: %s", self.session_id, line[:200])

    async def _monitor_output(self) -> None:
        stderr = self._process.stderr
        if stderr is not None:
            while True:
                try:
                    line = await stderr.readline()
                except ValueError:
                    _LOGGER.debug("[%s] Skipping overlong FFmpeg output line", self.session_id)
                    continue
                if not line:
                    break
                self._log_output(line)
        self._set_exited(await self._process.wait())

    def _set_exited(self, returncode: int) -> None:
        if returncode < 0:
            self.state = ProcessState.KILLED
            self.signal = -returncode
            try:
                name = signal.Signals(self.signal).name
            except ValueError:
                name = str(self.signal)
            _LOGGER.info("[%s] FFmpeg killed with signal %s", self.session_id, name)
        elif returncode > 0:
            self.state = ProcessState.EXITED_ERROR
            self.exit_code = returncode
            _LOGGER.error("[%s] FFmpeg exited with code %d", self.session_id, returncode)
        else:
            self.state = ProcessState.EXITED_CLEAN
            self.exit_code = 0
            _LOGGER.info("[%s] FFmpeg exited cleanly", self.session_id)

    async def async_terminate(self) -> None:
        """Kill the process (if still running) and wait until it is reaped."""
        if self._process.returncode is None:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
        try:
            await asyncio.wait_for(asyncio.shield(self._monitor), timeout=_TERMINATE_TIMEOUT)
        except asyncio.TimeoutError:
            _LOGGER.error(
                "[%s] Timeout while waiting for FFmpeg (pid %s) to exit; process left unreaped",
                self.session_id,
                self.pid,
            )
            self._monitor.cancel()
            if self.state is ProcessState.RUNNING:
                self.state = ProcessState.KILLED
                self.signal = int(signal.SIGKILL)


class SessionState(Enum):
    PENDING = "pending"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass(slots=True)
class StreamSession:
    endpoints: StreamEndpoints
    state: SessionState = SessionState.PENDING
    process: StreamProcess | None = None


class TwoNStreamManager:
    """Negotiate SRTP sessions and supervise one ffmpeg process per session."""

    def __init__(
        self,
        client: TwoNClient,
        *,
        rtsp_url: str | None = None,
        video_codec: str = DEFAULT_VIDEO_CODEC,
        ffmpeg_path: str | None = None,
    ) -> None:
        self._client = client
        self._rtsp_url = rtsp_url or client.get_rtsp_url()
        self._video_codec = video_codec
        self._ffmpeg_path = (
            ffmpeg_path or os.environ.get(FFMPEG_PATH_ENV) or shutil.which(FFMPEG_BINARY) or FFMPEG_BINARY
        )
        self._sessions: dict[str, StreamSession] = {}

        _LOGGER.info("Camera RTSP source %s, codec %s", _redact_url(self._rtsp_url), video_codec)

    @property
    def sessions(self) -> dict[str, StreamSession]:
        return dict(self._sessions)

    def get_session(self, session_id: str) -> StreamSession | None:
        return self._sessions.get(session_id)

    async def async_snapshot(
        self, width: int = DEFAULT_SNAPSHOT_WIDTH, height: int = DEFAULT_SNAPSHOT_HEIGHT
    ) -> bytes:
        return await self._client.async_get_snapshot(width=width, height=height)

    async def async_prepare(
        self,
        session_id: str,
        address: str,
        video_port: int,
        video_crypto_suite: int,
        video_key_material: bytes,
        audio_port: int | None = None,
        audio_crypto_suite: int | None = None,
        audio_key_material: bytes | None = None,
    ) -> StreamEndpoints:
        """Store a pending session and return the transport parameters to echo back."""

        if session_id in self._sessions:
            _LOGGER.debug("[%s] Re-preparing session, dropping previous one", session_id)
            await self.async_stop(session_id)

        audio: SrtpEndpoint | None = None
        if audio_port is not None:
            audio = SrtpEndpoint(
                port=audio_port,
                ssrc=generate_ssrc(),
                crypto_suite=audio_crypto_suite if audio_crypto_suite is not None else video_crypto_suite,
                key_material=audio_key_material or b"",
            )

        endpoints = StreamEndpoints(
            session_id=session_id,
            address=address,
            video=SrtpEndpoint(
                port=video_port,
                ssrc=generate_ssrc(),
                crypto_suite=video_crypto_suite,
                key_material=video_key_material,
            ),
            audio=audio,
        )
        self._sessions[session_id] = StreamSession(endpoints=endpoints)

        _LOGGER.debug("[%s] Stream prepared - target %s:%d", session_id, address, video_port)
        return endpoints

    def build_ffmpeg_args(self, endpoints: StreamEndpoints, video: VideoParams) -> list[str]:
        args = [
            "-hide_banner",
            "-loglevel", "warning",
            # Low-latency input options reduce startup time.
            "-fflags", "nobuffer",
            "-flags", "low_delay",
            "-probesize", "32000",
            "-analyzeduration", "1000000",
            "-rtsp_transport", "tcp",
            "-i", self._rtsp_url,
            "-an",
            "-vcodec", self._video_codec,
        ]

        if self._video_codec != "copy":
            args += ["-pix_fmt", "yuv420p", "-r", str(video.fps)]

        if self._video_codec == "libx264":
            args += [
                "-preset", "ultrafast",
                "-tune", "zerolatency",
                "-profile:v", video.profile,
                "-level:v", video.level,
            ]

        if self._video_codec != "copy":
            bitrate = f"{video.max_bitrate}k"
            args += [
                "-b:v", bitrate,
                "-bufsize", bitrate,
                "-maxrate", bitrate,
                # Keyframe every 2 seconds so the controller resyncs quickly.
                "-g", str(video.fps * 2),
                "-vf", f"scale={video.width}:{video.height}",
            ]

        leg = endpoints.video
        args += [
            "-payload_type", str(VIDEO_PAYLOAD_TYPE),
            "-ssrc", str(leg.ssrc),
            "-f", "rtp",
        ]
        target = f"{endpoints.address}:{leg.port}?rtcpport={leg.port}&pkt_size={RTP_PACKET_SIZE}"
        if leg.srtp_suite is None:
            args.append(f"rtp://{target}")
        else:
            args += [
                "-srtp_out_suite", leg.srtp_suite,
                "-srtp_out_params", leg.srtp_params,
                f"srtp://{target}",
            ]
        return args

    async def async_start(
        self, session_id: str, video: VideoParams, audio: AudioParams | None = None
    ) -> bool:
        """Spawn ffmpeg for a prepared session.

        Returns False if the process could not be spawned.
        """

        session = self._sessions.get(session_id)
        if session is None or session.state is not SessionState.PENDING:
            raise StreamSessionError(f"No session info for {session_id}")
        # Claim the record so a concurrent start for the same id is rejected.
        session.state = SessionState.STARTING

        _LOGGER.info(
            "[%s] Stream config: %dx%d @ %dfps, %dkbps",
            session_id,
            video.width,
            video.height,
            video.fps,
            video.max_bitrate,
        )
        if audio is not None:
            _LOGGER.debug("[%s] Audio requested (%s) but only video is streamed", session_id, audio.codec)

        args = self.build_ffmpeg_args(session.endpoints, video)
        _LOGGER.debug("[%s] FFmpeg args: %s", session_id, _redact_url(" ".join(args)))

        try:
            process = await StreamProcess.async_spawn(session_id, [self._ffmpeg_path, *args])
        except OSError as err:
            _LOGGER.error("[%s] Failed to start FFmpeg (%s): %s", session_id, self._ffmpeg_path, err)
            if self._sessions.get(session_id) is session:
                del self._sessions[session_id]
            return False

        if self._sessions.get(session_id) is not session:
            # Stopped while we were spawning.
            await process.async_terminate()
            return False

        session.process = process
        session.state = SessionState.ACTIVE
        _LOGGER.info("[%s] Stream started - PID %d", session_id, process.pid)
        return True

    async def async_reconfigure(self, session_id: str, video: VideoParams) -> None:
        """Acknowledge a mid-stream parameter change; the running process is kept."""

        session = self._sessions.get(session_id)
        if session is None or session.state is not SessionState.ACTIVE:
            _LOGGER.debug("[%s] Reconfigure for inactive session ignored", session_id)
            return
        _LOGGER.info(
            "[%s] Reconfigure requested (%dx%d @ %dfps, %dkbps), keeping current stream",
            session_id,
            video.width,
            video.height,
            video.fps,
            video.max_bitrate,
        )

    async def async_stop(self, session_id: str) -> None:
        """Stop a session in any state; unknown ids are ignored."""

        session = self._sessions.pop(session_id, None)
        if session is None:
            return

        if session.state is SessionState.ACTIVE and session.process is not None:
            await session.process.async_terminate()
            _LOGGER.info("[%s] Stream stopped", session_id)
        session.state = SessionState.STOPPED

    async def async_stop_all(self) -> None:
        await asyncio.gather(*(self.async_stop(sid) for sid in list(self._sessions)))
