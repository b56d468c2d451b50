from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase import AuthError, Client

from .api_models import ROLE_FROM_BACKEND, ROLE_TO_BACKEND, AuthUser, LoginRequest, RegistrationRequest

_log = logging.getLogger(__name__)

SIGNED_IN = "signed-in"
SIGNED_OUT = "signed-out"

Listener = Callable[[str, Optional[AuthUser]], None]

_FAILURES = (AuthError, APIError, httpx.HTTPError)


class IdentityProvider(Protocol):
    def current_user(self) -> Optional[AuthUser]: ...
    def subscribe(self, listener: Listener) -> Callable[[], None]: ...
    def access_token(self) -> Optional[str]: ...


class _ListenerRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def add(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: str, user: Optional[AuthUser]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, user)
            except Exception:
                _log.warning("identity listener failed on %s", event, exc_info=True)


class StaticIdentityProvider:
    """Identity held in memory; sign-in and sign-out are explicit calls."""

    def __init__(self, user: Optional[AuthUser] = None, token: Optional[str] = None):
        self._user = user
        self._token = token
        self._listeners = _ListenerRegistry()

    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def access_token(self) -> Optional[str]:
        return self._token if self._user else None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._listeners.add(listener)

    def sign_in(self, user: AuthUser, token: Optional[str] = None) -> None:
        self._user = user
        self._token = token
        self._listeners.emit(SIGNED_IN, user)

    def sign_out(self) -> None:
        self._user = None
        self._token = None
        self._listeners.emit(SIGNED_OUT, None)


@dataclass(frozen=True)
class RegistrationOutcome:
    success: bool
    needs_verification: bool = False


class SupabaseIdentityProvider:
    """Session state over the hosted auth service plus the profile tables.

    The SDK client keeps the session and attaches its token to every table
    call, so the gateway shares ``client`` with this provider.
    """

    def __init__(self, client: Client, *, redirect_url: str = ""):
        self.client = client
        self.redirect_url = redirect_url
        self._lock = threading.Lock()
        self._user: Optional[AuthUser] = None
        self._token: Optional[str] = None
        self._listeners = _ListenerRegistry()

    # ------------------------------------------------------------------
    # IdentityProvider interface
    # ------------------------------------------------------------------

    def current_user(self) -> Optional[AuthUser]:
        with self._lock:
            return self._user

    def access_token(self) -> Optional[str]:
        with self._lock:
            return self._token

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._listeners.add(listener)

    # ------------------------------------------------------------------
    # Auth flows
    # ------------------------------------------------------------------

    def _set_state(self, user: Optional[AuthUser], token: Optional[str]) -> None:
        with self._lock:
            self._user = user
            self._token = token

    def _redirect_options(self) -> Dict[str, Any]:
        return {"email_redirect_to": self.redirect_url} if self.redirect_url else {}

    def _drop_sdk_session(self) -> None:
        try:
            self.client.auth.sign_out()
        except _FAILURES:
            _log.warning("remote sign-out failed; local session cleared", exc_info=True)

    def load_profile(self, user_id: str) -> Optional[AuthUser]:
        rows = (
            self.client.table("usuarios")
            .select("id, email, nombres, apellidos, rol")
            .eq("id", user_id)
            .limit(1)
            .execute()
            .data
        )
        if not rows:
            _log.warning("no profile row for authenticated user %s", user_id)
            return None
        row = rows[0]
        role = ROLE_FROM_BACKEND.get(row.get("rol") or "")
        if role is None:
            _log.warning("profile %s has unknown role %r", user_id, row.get("rol"))
            return None
        fields: Dict[str, Any] = {
            "id": str(row["id"]),
            "email": row.get("email") or "",
            "first_names": row.get("nombres") or "",
            "last_names": row.get("apellidos") or "",
            "role": role,
        }
        # Role rows are optional: a missing or unreadable one leaves the codes empty.
        try:
            if role == "student":
                extra = (
                    self.client.table("estudiantes").select("codigo, id_escuela").eq("id", user_id).limit(1).execute().data
                )
                if extra:
                    fields["student_code"] = extra[0].get("codigo")
                    fields["school_id"] = extra[0].get("id_escuela")
            else:
                extra = self.client.table("profesores").select("codigo_profesor").eq("id", user_id).limit(1).execute().data
                if extra:
                    fields["professor_code"] = extra[0].get("codigo_profesor")
        except (APIError, httpx.HTTPError):
            _log.warning("role details unavailable for %s", user_id, exc_info=True)
        return AuthUser(**fields)

    def login(self, request: LoginRequest) -> bool:
        try:
            resp = self.client.auth.sign_in_with_password({"email": request.email, "password": request.password})
            user, session = resp.user, resp.session
            if user is None or session is None or not session.access_token:
                _log.warning("login failed: incomplete auth response")
                self._set_state(None, None)
                return False
            if not user.email_confirmed_at:
                _log.info("login refused for unconfirmed email")
                self._drop_sdk_session()
                self._set_state(None, None)
                return False
            profile = self.load_profile(str(user.id))
        except _FAILURES + (ValueError,):
            _log.warning("login failed", exc_info=True)
            self._set_state(None, None)
            return False
        if profile is None:
            self._drop_sdk_session()
            self._set_state(None, None)
            return False

        self._set_state(profile, session.access_token)
        self._touch_last_connection(profile.id)
        _log.info("signed in", extra={"user_id": profile.id})
        self._listeners.emit(SIGNED_IN, profile)
        return True

    def _touch_last_connection(self, user_id: str) -> None:
        try:
            self.client.table("usuarios").update(
                {"ultima_conexion": datetime.now(timezone.utc).isoformat()}
            ).eq("id", user_id).execute()
        except (APIError, httpx.HTTPError):
            _log.warning("could not update last connection for %s", user_id, exc_info=True)

    def logout(self) -> None:
        previous = self.current_user()
        self._set_state(None, None)
        self._drop_sdk_session()
        _log.info("signed out", extra={"user_id": previous.id if previous else ""})
        self._listeners.emit(SIGNED_OUT, None)

    def register(self, request: RegistrationRequest) -> RegistrationOutcome:
        credentials: Dict[str, Any] = {"email": request.email, "password": request.password}
        options = self._redirect_options()
        if options:
            credentials["options"] = options
        try:
            resp = self.client.auth.sign_up(credentials)
        except _FAILURES:
            _log.warning("registration failed at sign-up", exc_info=True)
            return RegistrationOutcome(success=False)
        user = resp.user
        if user is None or not user.id:
            _log.warning("registration failed: sign-up returned no user")
            return RegistrationOutcome(success=False)
        user_id = str(user.id)

        try:
            self.client.table("usuarios").insert(
                {
                    "id": user_id,
                    "email": request.email,
                    # Column is mandatory; the real secret is held by the auth service.
                    "password": "hashed",
                    "dni": request.dni,
                    "nombres": request.first_names,
                    "apellidos": request.last_names,
                    "telefono": request.phone,
                    "genero": request.gender,
                    "fecha_nacimiento": request.birth_date.isoformat(),
                    "rol": ROLE_TO_BACKEND[request.role],
                }
            ).execute()
            if request.role == "student":
                self.client.table("estudiantes").insert(
                    {"id": user_id, "codigo": request.student_code, "id_escuela": request.school_id}
                ).execute()
            else:
                self.client.table("profesores").insert(
                    {
                        "id": user_id,
                        "codigo_profesor": request.professor_code,
                        "especialidad": request.specialty,
                        "grado_academico": request.academic_degree,
                    }
                ).execute()
        except _FAILURES + (ValueError,):
            _log.warning("registration failed writing profile rows", exc_info=True)
            return RegistrationOutcome(success=False)
        finally:
            # Sign-up may open a session of its own; nobody is signed in until login.
            if resp.session is not None and self.current_user() is None:
                self._drop_sdk_session()

        return RegistrationOutcome(success=True, needs_verification=not user.email_confirmed_at)

    def resend_verification(self, email: str) -> bool:
        credentials: Dict[str, Any] = {"type": "signup", "email": email}
        options = self._redirect_options()
        if options:
            credentials["options"] = options
        try:
            self.client.auth.resend(credentials)
        except _FAILURES:
            _log.warning("resend verification failed", exc_info=True)
            return False
        return True
