from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
import threading
from typing import Any, Literal

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from solaris.api import (
    routes_captures,
    routes_device,
    routes_health,
    routes_metrics,
    routes_session,
    routes_status,
)
from solaris.config.migrate import SettingsStore
from solaris.device.client import DeviceClient
from solaris.device.provisioning import ProvisioningRequest, provision_device
from solaris.errors import NoDeviceBoundError, RemoteStoreError
from solaris.identity.base import IdentityProvider, StaticIdentityProvider, UserIdentity
from solaris.identity.supabase_auth import SupabaseAuthProvider
from solaris.reconcile.captures import CaptureHistorySync
from solaris.reconcile.reconciler import StatusReconciler
from solaris.storage.base import EventStore
from solaris.storage.db import Database
from solaris.storage.models import DeviceRecord
from solaris.storage.repo import SqliteEventStore
from solaris.storage.rest import RestEventStore
from solaris.util.logging import get_logger, setup_logging
from solaris.util.security import SecretStore, validate_device_id, validate_endpoint_url

logger = get_logger(__name__)

APP_VERSION = "0.1.0"
LOCAL_DEVICE_ID = "dev-local"
Lifecycle = Literal["active", "background", "inactive"]


def _build_backend(
    settings_store: SettingsStore, secret_store: SecretStore, data_path: Path
) -> tuple[IdentityProvider, EventStore, Database | None]:
    settings = settings_store.settings
    if settings.backend == "local":
        db = Database(data_path / "db" / "solaris.db")
        identity = StaticIdentityProvider(settings.local_identity.user_id, settings.local_identity.email)
        return identity, SqliteEventStore(db), db

    supabase = settings.supabase
    if not supabase.url or not supabase.anon_key:
        raise ValueError("supabase backend requires supabase.url and supabase.anon_key in settings")

    def _persist_session_ref(ref: dict[str, str] | None) -> None:
        current = settings_store.settings.supabase.model_dump()
        current["session_ref"] = ref
        settings_store.update(supabase=current)

    identity = SupabaseAuthProvider(
        base_url=supabase.url,
        anon_key=supabase.anon_key,
        secret_store=secret_store,
        session_ref=supabase.session_ref,
        on_session_ref=_persist_session_ref,
        timeout=settings.polling.request_timeout_seconds,
    )
    store = RestEventStore(
        base_url=supabase.url,
        anon_key=supabase.anon_key,
        access_token=identity.access_token,
        timeout=settings.polling.request_timeout_seconds,
    )
    return identity, store, None


@dataclass
class SolarisState:
    settings_store: SettingsStore
    log_level: str
    secret_store: SecretStore
    identity: IdentityProvider
    store: EventStore
    reconciler: StatusReconciler
    captures: CaptureHistorySync
    data_dir: Path
    db: Database | None = None
    autostart: bool = True
    _unsubscribe: Any = field(default=None, init=False, repr=False)
    _lifecycle: str = field(default="active", init=False)
    _shutdown_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _shutdown_started: bool = field(default=False, init=False, repr=False)
    _shutdown_complete: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(
        cls,
        data_dir: str | None = None,
        bind: str | None = None,
        port: int | None = None,
        log_level: str = "info",
        backend: str | None = None,
        autostart: bool = True,
    ) -> "SolarisState":
        settings_store = SettingsStore(cli_data_dir=data_dir)

        updates: dict[str, Any] = {}
        if bind:
            updates["bind"] = bind
        if port:
            updates["port"] = port
        if backend:
            updates["backend"] = backend
        if updates:
            settings_store.update(**updates)

        settings = settings_store.settings
        data_path = Path(settings.data_dir)
        setup_logging(log_level, data_path)

        secret_store = SecretStore(data_path)
        identity, store, db = _build_backend(settings_store, secret_store, data_path)

        polling = settings.polling

        def _client_factory(device: DeviceRecord) -> DeviceClient:
            return DeviceClient(
                device.endpoint_url,
                health_timeout=polling.health_timeout_seconds,
                request_timeout=polling.request_timeout_seconds,
            )

        reconciler = StatusReconciler(_client_factory, poll_interval_s=polling.status_seconds)
        captures = CaptureHistorySync(store, limit=polling.capture_limit, poll_interval_s=polling.captures_seconds)

        state = cls(
            settings_store=settings_store,
            log_level=log_level,
            secret_store=secret_store,
            identity=identity,
            store=store,
            reconciler=reconciler,
            captures=captures,
            data_dir=data_path,
            db=db,
            autostart=autostart,
        )
        user = identity.restore()
        state._unsubscribe = identity.subscribe(state._on_session_change)
        if user is not None:
            state.activate_user(user)
        else:
            logger.info("no active session; sign in to bind a device")
        return state

    def activate_user(self, user: UserIdentity) -> DeviceRecord | None:
        try:
            device = self.store.device_for_owner(user.id)
        except RemoteStoreError as exc:
            logger.warning("could not load device for %s: %s", user.id, exc)
            device = None

        endpoint = self.settings_store.settings.device_endpoint
        if device is None and endpoint and self.settings_store.settings.backend == "local":
            device = self.store.register_device(
                DeviceRecord(id=LOCAL_DEVICE_ID, owner_id=user.id, display_name="SOLARIS", endpoint_url=endpoint)
            )
            logger.info("registered configured endpoint as local device %s", device.id)

        if device is None:
            logger.info("no device registered for %s", user.id)
        self.bind_device(device)
        return device

    def bind_device(self, device: DeviceRecord | None) -> None:
        self.reconciler.bind_device(device)
        self.captures.bind_device(device.id if device else None)
        if device is None:
            self.stop_polling()
            return
        if self.autostart:
            self.captures.sync()
            self.reconciler.refresh()
            self.start_polling()

    def start_polling(self) -> None:
        polling = self.settings_store.settings.polling
        self.reconciler.start_polling(polling.status_seconds)
        self.captures.start_polling(polling.captures_seconds)
        if self._lifecycle != "active":
            self.reconciler.on_background()
            self.captures.on_background()

    def stop_polling(self) -> None:
        self.reconciler.stop_polling()
        self.captures.stop_polling()

    @property
    def lifecycle(self) -> str:
        return self._lifecycle

    def set_lifecycle(self, lifecycle: Lifecycle) -> None:
        previous = self._lifecycle
        self._lifecycle = lifecycle
        if lifecycle == previous:
            return
        if lifecycle == "active":
            logger.info("host foregrounded; resuming polling")
            self.reconciler.on_foreground()
            self.captures.on_foreground()
        elif previous == "active":
            logger.info("host %s; pausing polling", lifecycle)
            self.reconciler.on_background()
            self.captures.on_background()

    def register_device(self, display_name: str, endpoint_url: str, device_id: str | None = None) -> DeviceRecord:
        user = self.identity.current_user()
        if user is None:
            raise NoDeviceBoundError("Sign in before registering a device")
        endpoint = validate_endpoint_url(endpoint_url)
        current = self.reconciler.device
        record = DeviceRecord(
            id=validate_device_id(device_id or (current.id if current else LOCAL_DEVICE_ID)),
            owner_id=user.id,
            display_name=display_name.strip() or "SOLARIS",
            endpoint_url=endpoint,
        )
        stored = self.store.register_device(record)
        self.bind_device(stored)
        return stored

    def rename_device(self, display_name: str) -> DeviceRecord:
        current = self.reconciler.device
        if current is None:
            raise NoDeviceBoundError("No device is bound")
        renamed = self.store.rename_device(current.id, display_name.strip())
        self.reconciler.update_device(renamed)
        return renamed

    def pair_device(self, device_name: str, ssid: str, password: str, endpoint_url: str) -> DeviceRecord:
        user = self.identity.current_user()
        if user is None:
            raise NoDeviceBoundError("Sign in before pairing a device")
        result = provision_device(
            ProvisioningRequest(user_id=user.id, device_name=device_name, ssid=ssid, password=password),
            setup_url=self.settings_store.settings.provisioning_url,
        )
        return self.register_device(device_name, endpoint_url, device_id=result.device_id)

    def _on_session_change(self, user: UserIdentity | None) -> None:
        if self._shutdown_started:
            return
        if user is None:
            logger.info("session ended; unbinding device")
            self.bind_device(None)
            return
        self.activate_user(user)

    def begin_shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shutdown_started:
                return
            self._shutdown_started = True
        self.stop_polling()

    def shutdown(self) -> None:
        self.begin_shutdown()
        with self._shutdown_lock:
            if self._shutdown_complete:
                return
            self._shutdown_complete = True
        if callable(self._unsubscribe):
            self._unsubscribe()
        self.reconciler.close()
        self.captures.close()
        self.store.close()
        self.identity.close()


def create_app(
    data_dir: str | None = None,
    bind: str | None = None,
    port: int | None = None,
    log_level: str = "info",
    backend: str | None = None,
) -> FastAPI:
    state = SolarisState.create(data_dir=data_dir, bind=bind, port=port, log_level=log_level, backend=backend)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            app.state.solaris.shutdown()

    app = FastAPI(title="Solaris", version=APP_VERSION, lifespan=lifespan)
    app.state.solaris = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:8081", "http://127.0.0.1:8081", "http://localhost:19006"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes_health.router, prefix="/api")
    app.include_router(routes_status.router, prefix="/api")
    app.include_router(routes_captures.router, prefix="/api")
    app.include_router(routes_device.router, prefix="/api")
    app.include_router(routes_session.router, prefix="/api")
    app.include_router(routes_metrics.router, prefix="/api")
    return app
