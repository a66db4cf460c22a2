# =============================================================================
# oms_core/offline/connectivity.py
# Connectivity Monitor - online/offline state and transition events
# =============================================================================
"""
ConnectivityMonitor - single source of truth for the online/offline state.

Features:
- Read-only ``is_online`` / ``status`` for everyone except the monitor
- ``online`` / ``offline`` callbacks fired once per real transition
- Optional reachability probe feeding the monitor from a background thread
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"
    OFFLINE = "offline"


class ConnectivityEvent(Enum):
    """Transition events a subscriber can listen for."""
    ONLINE = "online"     # offline -> online
    OFFLINE = "offline"   # online -> offline


@dataclass(frozen=True)
class ConnectionState:
    """Snapshot of the connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.OFFLINE
    last_change: Optional[datetime] = None
    last_online: Optional[datetime] = None
    transitions: int = 0


ConnectivityCallback = Callable[[ConnectionState], None]


class ConnectivityMonitor:
    """
    Passive listener for the host's network-state notifications.

    Only ``set_online`` changes the state. Repeated signals of the current
    state are ignored, so an ``online`` callback runs exactly once per
    offline -> online transition and never at construction time.

    Usage:
        monitor = ConnectivityMonitor(initially_online=True)
        monitor.register_callback(ConnectivityEvent.ONLINE, on_back_online)
        monitor.set_online(False)   # host reported network loss
        monitor.set_online(True)    # fires on_back_online once
    """

    def __init__(self, initially_online: bool = False):
        status = ConnectionStatus.ONLINE if initially_online else ConnectionStatus.OFFLINE
        self._state = ConnectionState(
            status=status,
            last_online=datetime.now() if initially_online else None,
        )
        self._state_lock = threading.Lock()
        self._callbacks: Dict[ConnectivityEvent, List[ConnectivityCallback]] = {
            ConnectivityEvent.ONLINE: [],
            ConnectivityEvent.OFFLINE: [],
        }
        self._probe: Optional[ReachabilityProbe] = None
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()

    @property
    def state(self) -> ConnectionState:
        """Current connection state snapshot."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return not self.is_online

    def set_online(self, online: bool) -> bool:
        """
        Record a network-state notification from the host runtime.

        Args:
            online: Whether the host currently reports connectivity

        Returns:
            True if this signal was a transition (callbacks fired)
        """
        new_status = ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE

        with self._state_lock:
            old = self._state
            if old.status == new_status:
                return False
            now = datetime.now()
            self._state = replace(
                old,
                status=new_status,
                last_change=now,
                last_online=now if online else old.last_online,
                transitions=old.transitions + 1,
            )
            snapshot = self._state

        logger.info(f"Connection status changed: {old.status.value} -> {new_status.value}")
        event = ConnectivityEvent.ONLINE if online else ConnectivityEvent.OFFLINE
        self._notify_callbacks(event, snapshot)
        return True

    def register_callback(self, event: ConnectivityEvent, callback: ConnectivityCallback) -> None:
        """
        Register a callback for a connectivity transition.

        Args:
            event: Transition to listen for
            callback: Function called with the new ConnectionState
        """
        callbacks = self._callbacks[event]
        if callback not in callbacks:
            callbacks.append(callback)

    def unregister_callback(self, event: ConnectivityEvent, callback: ConnectivityCallback) -> None:
        """Remove a registered callback."""
        callbacks = self._callbacks[event]
        if callback in callbacks:
            callbacks.remove(callback)

    def _notify_callbacks(self, event: ConnectivityEvent, state: ConnectionState) -> None:
        """Notify all registered callbacks of a transition."""
        for callback in list(self._callbacks[event]):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in connectivity callback: {e}", exc_info=True)

    # =========================================================================
    # OPTIONAL REACHABILITY PROBE
    # =========================================================================

    def start_monitoring(self, probe: ReachabilityProbe, interval: Optional[float] = None) -> None:
        """
        Feed the monitor from a background reachability probe.

        Only useful where the host has no network-change notifications of
        its own (e.g. a Streamlit server process).
        """
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._probe = probe
        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            args=(interval,),
            daemon=True,
            name="ConnectivityMonitor",
        )
        self._monitor_thread.start()
        logger.debug("Connectivity monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background monitoring."""
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
            self._monitor_thread = None
        logger.debug("Connectivity monitoring stopped")

    def _monitoring_loop(self, interval: Optional[float]) -> None:
        """Background monitoring loop."""
        while not self._stop_monitoring.is_set():
            try:
                self.set_online(self._probe.check())
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

            wait = interval or (
                ReachabilityProbe.CHECK_INTERVAL_ONLINE
                if self.is_online
                else ReachabilityProbe.CHECK_INTERVAL_OFFLINE
            )
            if self._stop_monitoring.wait(timeout=wait):
                break

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        state = self._state
        return {
            "status": state.status.value,
            "is_online": self.is_online,
            "last_change": state.last_change.isoformat() if state.last_change else None,
            "last_online": state.last_online.isoformat() if state.last_online else None,
            "transitions": state.transitions,
        }


class ReachabilityProbe:
    """
    TCP reachability check against public DNS resolvers and the remote store.

    Returns True only when both the internet and the remote host answer.
    """

    CHECK_INTERVAL_ONLINE = 30      # Seconds between checks when online
    CHECK_INTERVAL_OFFLINE = 10     # Seconds between checks when offline
    CONNECTION_TIMEOUT = 5          # Timeout for connection tests

    DEFAULT_HOSTS: Sequence[Tuple[str, int]] = (
        ("8.8.8.8", 53),        # Google DNS
        ("1.1.1.1", 53),        # Cloudflare DNS
        ("208.67.222.222", 53), # OpenDNS
    )

    def __init__(self, remote_url: Optional[str] = None, hosts: Optional[Sequence[Tuple[str, int]]] = None):
        self.remote_url = remote_url
        self.hosts = tuple(hosts) if hosts is not None else self.DEFAULT_HOSTS

    def _can_connect(self, host: str, port: int) -> bool:
        try:
            with socket.create_connection((host, port), timeout=self.CONNECTION_TIMEOUT):
                return True
        except OSError:
            return False

    def check_internet(self) -> bool:
        return any(self._can_connect(host, port) for host, port in self.hosts)

    def check_remote(self) -> bool:
        if not self.remote_url:
            # No remote configured - internet reachability is all we can test
            return True
        parsed = urlparse(self.remote_url)
        if not parsed.hostname:
            return False
        return self._can_connect(parsed.hostname, parsed.port or 443)

    def check(self) -> bool:
        return self.check_internet() and self.check_remote()
