"""Logger session: the lock/calibrate/configure/convert state machine.

A session owns one `UdpTransport` bound to one device and walks through

    Discovered -> Locking -> CalibratingRead -> Configuring -> Converting
               -> Disposing -> Closed

The handshake (lock, EEPROM read, mains and channel configuration, start
conversion) runs on the caller's thread with exactly one request in flight.
Once converting, two background threads run until `close()`:

- the transport's receive loop, which decodes every telemetry datagram,
  updates the channel readings and notifies listeners;
- the keepalive loop, which sends `KeepAlive` every `keepalive_period`
  seconds. The device unlocks itself if it sees no keepalive for 15 s.

Listeners are called synchronously on the receive-loop thread, once per
decoded packet, with `(session, sample)`. Do not assume any particular
thread in a listener and do not block in it for long.

Teardown (stop conversion, unlock, stop keepalive, close the transport) runs
exactly once, whether it is reached through `close()`, the context manager,
a failed handshake or, as a last resort, the finalizer.
"""

from __future__ import annotations

import math
import threading
import time
import weakref
from typing import Callable, Optional, Type

from loguru import logger

from picolog_udp.device.decoder import TelemetryDecoder
from picolog_udp.device.device import Device
from picolog_udp.device.transport import UdpTransport
from picolog_udp.types import (
    UNKNOWN,
    CalibrationData,
    DeviceDescriptor,
    DeviceLockedError,
    HandshakeError,
    MacMismatchError,
    Sample,
    SessionClosedError,
    SessionConfig,
    SessionFailedError,
    SessionState,
    Variant,
)

SampleListener = Callable[["LoggerSession", Sample], None]
FailureListener = Callable[["LoggerSession", SessionFailedError], None]


class Commands:
    """Command opcodes and protocol strings shared by both loggers."""

    MAINS_FREQUENCY = 0x30
    START_CONVERTING = 0x31
    READ_EEPROM = 0x32
    UNLOCK = 0x33
    KEEPALIVE = 0x34

    LOCK = b"lock"
    LOCK_RESPONSE = "Lock"


def _weak_callback(method):
    """Wrap a bound method so the caller does not keep its instance alive."""
    ref = weakref.WeakMethod(method)

    def call(*args):
        target = ref()
        if target is not None:
            target(*args)

    return call


def _keepalive_loop(transport: UdpTransport, stop: threading.Event, period: float):
    payload = bytes([Commands.KEEPALIVE])
    while not stop.wait(period):
        try:
            transport.send(payload)
        except SessionClosedError:
            break
        except OSError as e:
            # keep trying, the device only unlocks after missing 15 s worth
            logger.warning("Keepalive to {} failed: {}", transport.peer, e)


class LoggerSession(Device):
    """A locked, converting connection to one logger.

    Subclasses set `variant` and `decoder_class`.

    Parameters
    ----------
    descriptor : DeviceDescriptor
        Device to talk to, usually from discovery
    config : SessionConfig, optional
        Session settings, validated here
    transport_factory : callable, optional
        Returns an unconnected transport, `UdpTransport` by default
    """

    variant: Variant
    decoder_class: Type[TelemetryDecoder]
    required_config = {"descriptor": DeviceDescriptor, "config": SessionConfig}

    descriptor: DeviceDescriptor
    config: SessionConfig

    def __init__(
        self,
        descriptor: DeviceDescriptor,
        config: Optional[SessionConfig] = None,
        transport_factory: Callable[[], UdpTransport] = UdpTransport,
    ):
        config = SessionConfig() if config is None else config
        super().__init__(descriptor=descriptor, config=config)
        if descriptor.variant is not self.variant:
            raise ValueError(
                f"{self.__class__.__name__} cannot open a {descriptor.variant.value} "
                + "device"
            )
        self.config.validate()
        if not self.active_channels:
            raise ValueError(
                f"Channel config {self.config.channel_config:#04x} enables no "
                + f"{self.variant.value} channel"
            )

        self._transport_factory = transport_factory
        self._transport: Optional[UdpTransport] = None
        self._state = SessionState.DISCOVERED
        self._state_lock = threading.RLock()
        self._exchange_lock = threading.Lock()
        self._locked = False
        self._disposed = False
        self._calibration: Optional[CalibrationData] = None
        self._decoder: Optional[TelemetryDecoder] = None
        self._readings: dict[int, float] = {}
        self._raw_readings: dict[int, float] = {}
        self._listeners: list[SampleListener] = []
        self._failure_listeners: list[FailureListener] = []
        self._keepalive_stop = threading.Event()
        self._keepalive_thread: Optional[threading.Thread] = None
        self.failure: Optional[SessionFailedError] = None

    def __str__(self):
        return f"Serial: {self.serial}\tIP:{self.address}:{self.port}"

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(serial={self.serial!r}, "
            + f"address={self.address!r}, port={self.port}, state={self.state.value})"
        )

    def __del__(self):
        # backstop only, owners are expected to close() or use `with`
        if getattr(self, "_disposed", True):
            return
        try:
            logger.warning("{} was not closed, releasing it in finalizer", self)
            self._teardown()
        except Exception:
            logger.exception("Error releasing {} in finalizer", self)

    # -------------------------------------------------------------------------
    # Descriptor and readings
    # -------------------------------------------------------------------------

    @property
    def serial(self) -> str:
        return self.descriptor.serial

    @property
    def address(self) -> str:
        return self.descriptor.address

    @property
    def port(self) -> int:
        return self.descriptor.port

    @property
    def mac_address(self) -> str:
        return self.descriptor.mac_address

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def calibration(self) -> Optional[CalibrationData]:
        return self._calibration

    @property
    def active_channels(self) -> tuple[int, ...]:
        return tuple(
            ch for ch in self.config.active_channels if ch <= self.variant.channel_count
        )

    @property
    def readings(self) -> dict[int, float]:
        """Latest calibrated value per active channel (NaN until first sample)."""
        with self._state_lock:
            return dict(self._readings)

    @property
    def raw_readings(self) -> dict[int, float]:
        with self._state_lock:
            return dict(self._raw_readings)

    def get_reading(self, channel: int) -> float:
        """Latest calibrated value of a 1-based channel."""
        with self._state_lock:
            try:
                return self._readings[channel]
            except KeyError:
                raise KeyError(
                    f"Channel {channel} is not active on {self.serial} "
                    + f"(active: {sorted(self._readings)})"
                ) from None

    def is_connected(self) -> bool:
        return self._state is SessionState.CONVERTING and not self._disposed

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def add_listener(self, listener: SampleListener) -> None:
        """Call `listener(session, sample)` for every decoded packet."""
        with self._state_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: SampleListener) -> None:
        with self._state_lock:
            self._listeners.remove(listener)

    def add_failure_listener(self, listener: FailureListener) -> None:
        """Call `listener(session, error)` if the receive loop dies."""
        with self._state_lock:
            self._failure_listeners.append(listener)

    def remove_failure_listener(self, listener: FailureListener) -> None:
        with self._state_lock:
            self._failure_listeners.remove(listener)

    # -------------------------------------------------------------------------
    # Handshake
    # -------------------------------------------------------------------------

    def open(self) -> None:
        """Lock the device, read calibration, configure it and start streaming.

        Raises
        ------
        DeviceLockedError
            The device is locked to another host; only the transport was closed
        HandshakeError
            Any other failure, raised after the session was torn down
        """
        with self._state_lock:
            if self._state is not SessionState.DISCOVERED:
                raise RuntimeError(f"Cannot open {self!r}, already {self._state.value}")
            self._state = SessionState.LOCKING

        logger.info("Opening {} {}", self.variant.value, self)
        try:
            self._transport = self._transport_factory()
            self._transport.connect(self.address, self.port)
        except OSError as e:
            self._teardown(release_device=False)
            raise HandshakeError(f"Could not open transport to {self}: {e}") from e

        try:
            self._lock_device()
        except DeviceLockedError:
            self._teardown(release_device=False)
            raise
        except Exception as e:
            self._fail_handshake(e)

        try:
            self._read_calibration()
            self._configure()
            self._start_converting()
        except Exception as e:
            self._fail_handshake(e)
        logger.info("{} converting on channels {}", self, list(self.active_channels))

    def _fail_handshake(self, exc: Exception):
        step = self._state.value
        logger.error("Handshake with {} failed in {}: {}", self, step, exc)
        self._teardown()
        if isinstance(exc, HandshakeError):
            raise exc
        raise HandshakeError(f"Handshake with {self} failed in {step}: {exc}") from exc

    def _request(self, data: bytes) -> bytes:
        """Send one handshake request and wait for its response."""
        if not self._exchange_lock.acquire(blocking=False):
            raise HandshakeError("Another handshake request is already in flight")
        try:
            if self._state not in (SessionState.LOCKING, SessionState.CALIBRATING_READ):
                raise HandshakeError(
                    f"No request/response exchange allowed in {self._state.value}"
                )
            self._send(data)
            return self._transport.receive_one(timeout=self.config.handshake_timeout)
        finally:
            self._exchange_lock.release()

    def _send(self, data: bytes) -> None:
        if self._disposed:
            raise SessionClosedError(f"{self} is closed")
        self._transport.send(data)

    def _send_command(self, opcode: int, arg: Optional[int] = None) -> None:
        self._send(bytes([opcode]) if arg is None else bytes([opcode, arg]))

    def _lock_device(self) -> None:
        # response is "Lock Success" or "Lock Success (already locked to this machine)"
        response = self._request(Commands.LOCK).decode("ascii", errors="replace")
        if not response.startswith(Commands.LOCK_RESPONSE):
            logger.info("{} is locked by another host: {!r}", self, response)
            raise DeviceLockedError(f"{self} is locked by another host")
        self._locked = True
        logger.debug("{} locked: {!r}", self, response.strip())

    def _read_calibration(self) -> None:
        self._state = SessionState.CALIBRATING_READ
        dump = self._request(bytes([Commands.READ_EEPROM]))
        try:
            calibration = CalibrationData.from_eeprom(
                dump,
                self.variant.channel_count,
                byte_order=self.config.calibration_byte_order,
            )
        except ValueError as e:
            raise HandshakeError(f"Bad EEPROM dump from {self}: {e}") from e

        # ensure we have the same device that responded to the broadcast
        if self.mac_address != UNKNOWN and calibration.mac_address != self.mac_address:
            msg = (
                f"EEPROM MAC {calibration.mac_address} of {self} does not match "
                + f"discovered MAC {self.mac_address}"
            )
            if self.config.mac_check == "strict":
                raise MacMismatchError(msg, self.mac_address, calibration.mac_address)
            logger.warning(msg)

        self._calibration = calibration
        self._decoder = self.decoder_class(calibration)
        logger.debug("{} calibration: {}", self, calibration.constants)

    def _configure(self) -> None:
        self._state = SessionState.CONFIGURING
        self._send_command(Commands.MAINS_FREQUENCY, self.config.mains_byte)
        self._configure_channels()

    def _configure_channels(self) -> None:
        with self._state_lock:
            self._readings = {ch: math.nan for ch in self.active_channels}
            self._raw_readings = {ch: math.nan for ch in self.active_channels}

    def _start_converting(self) -> None:
        # arm the receive loop first so no early datagram is lost
        self._transport.subscribe_continuous(
            _weak_callback(self._on_packet), _weak_callback(self._on_receive_error)
        )
        self._send_command(Commands.START_CONVERTING, self.config.channel_config)

        with self._state_lock:
            # the receive loop may already have failed and torn us down
            if self._disposed:
                raise HandshakeError(
                    f"{self} failed while starting conversion: {self.failure}"
                ) from self.failure
            self._state = SessionState.CONVERTING
            self._keepalive_thread = threading.Thread(
                target=_keepalive_loop,
                args=(self._transport, self._keepalive_stop, self.config.keepalive_period),
                name=f"keepalive-{self.serial}",
                daemon=True,
            )
            self._keepalive_thread.start()

    # -------------------------------------------------------------------------
    # Steady state
    # -------------------------------------------------------------------------

    def _on_packet(self, data: bytes) -> None:
        with self._state_lock:
            if self._disposed or self._decoder is None:
                return
            decoded = self._decoder.decode(data)
            if decoded is None:
                return
            channel, raw, value = decoded
            if channel not in self._readings:
                logger.trace("Dropping sample for inactive channel {}", channel)
                return
            self._raw_readings[channel] = raw
            self._readings[channel] = value
            sample = Sample(
                channel=channel,
                raw=raw,
                value=value,
                unit=self.variant.unit,
                timestamp=time.monotonic(),
            )
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(self, sample)
            except Exception:
                logger.exception("Sample listener {} raised", listener)

    def _on_receive_error(self, exc: BaseException) -> None:
        with self._state_lock:
            if self._disposed:
                return
            self.failure = SessionFailedError(f"Receive loop of {self} failed: {exc}")
            self.failure.__cause__ = exc
            listeners = list(self._failure_listeners)
        logger.error("{}", self.failure)
        self._teardown()
        for listener in listeners:
            try:
                listener(self, self.failure)
            except Exception:
                logger.exception("Failure listener {} raised", listener)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Stop conversion, unlock the device and close the transport.

        Only the first call does anything.
        """
        self._teardown()

    def _teardown(self, release_device: bool = True) -> None:
        with self._state_lock:
            if self._disposed:
                return
            self._disposed = True
            self._state = SessionState.DISPOSING

        # no keepalive may follow STOP/UNLOCK on the wire
        self._keepalive_stop.set()
        thread = self._keepalive_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

        transport = self._transport
        if release_device and transport is not None and transport.is_open():
            # start converting with no channels enabled == stop converting
            for data in (
                bytes([Commands.START_CONVERTING, 0x00]),
                bytes([Commands.UNLOCK]),
            ):
                try:
                    transport.send(data)
                except (OSError, SessionClosedError) as e:
                    logger.warning("Could not send {} to {}: {}", data.hex(), self, e)

        if transport is not None:
            transport.close()

        self._locked = False
        self._state = SessionState.CLOSED
        logger.info("{} closed", self)
