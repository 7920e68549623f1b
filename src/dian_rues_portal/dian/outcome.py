from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, Union

from ..errors import OutcomeError
from .modal_guard import ModalGuardState


logger = logging.getLogger(__name__)


MSG_PAGE_RELOADED = (
    "La página de la DIAN se recargó antes de obtener respuesta. "
    "Verifique el estado del portal e intente nuevamente."
)
MSG_PAGE_CLOSED = (
    "La página de la DIAN se cerró antes de obtener respuesta. Verifique los datos e intente nuevamente."
)
MSG_RETURNED_TO_START = "No fue posible generar el token. Verifique la información e intente nuevamente."
MSG_TIMEOUT = "No se recibió confirmación del envío del correo. Verifique las credenciales."


@dataclass(frozen=True)
class Success:
    message: str


@dataclass(frozen=True)
class ErrorDetected:
    message: str


@dataclass(frozen=True)
class Timeout:
    message: str


@dataclass(frozen=True)
class Pending:
    pass


OutcomeSignal = Union[Success, ErrorDetected, Timeout, Pending]
PENDING = Pending()


class PageGoneError(RuntimeError):
    """The page or its execution context was destroyed while being read (e.g. full reload)."""


class OutcomeProbe(Protocol):
    """
    Read-only view of the page used by the poller. Every method may raise `PageGoneError`.
    """

    def consume_stored_error(self) -> Optional[str]: ...

    def guard_state(self) -> Optional[ModalGuardState]: ...

    def visible_modal_error(self) -> Optional[str]: ...

    def success_text(self) -> Optional[str]: ...

    def error_text(self) -> Optional[str]: ...

    def body_error_hint(self) -> Optional[str]: ...

    def is_closed(self) -> bool: ...

    def returned_to_start(self) -> bool: ...


@dataclass
class PollContext:
    last_error: Optional[str] = None
    blocked_seen: int = 0


Check = Callable[[OutcomeProbe, PollContext], Optional[OutcomeSignal]]


def check_stored_error(probe: OutcomeProbe, ctx: PollContext) -> Optional[OutcomeSignal]:
    stored = probe.consume_stored_error()
    if stored:
        ctx.last_error = stored
        return ErrorDetected(stored)
    return None


def check_guard_state(probe: OutcomeProbe, ctx: PollContext) -> Optional[OutcomeSignal]:
    state = probe.guard_state()
    if state is None:
        return None

    blocked = len(state.blocked_transitions)
    if blocked and blocked != ctx.blocked_seen:
        logger.warning(
            "[ModalGuard] navigation blocked by error modal: %s",
            ", ".join(f"{t.action}({', '.join(t.arguments)})" for t in state.blocked_transitions),
        )
        ctx.blocked_seen = blocked

    if state.last_error:
        ctx.last_error = state.last_error
        return ErrorDetected(state.last_error)
    return None


def check_visible_modal(probe: OutcomeProbe, ctx: PollContext) -> Optional[OutcomeSignal]:
    text = probe.visible_modal_error()
    if text:
        ctx.last_error = text
        return ErrorDetected(text)
    return None


def check_error_alert(probe: OutcomeProbe, ctx: PollContext) -> Optional[OutcomeSignal]:
    text = probe.error_text()
    if text:
        return ErrorDetected(text)
    return None


def check_success(probe: OutcomeProbe, ctx: PollContext) -> Optional[OutcomeSignal]:
    text = probe.success_text()
    if text:
        return Success(text)
    return None


def check_body_hint(probe: OutcomeProbe, ctx: PollContext) -> Optional[OutcomeSignal]:
    text = probe.body_error_hint()
    if text:
        return ErrorDetected(text)
    return None


def check_page_closed(probe: OutcomeProbe, ctx: PollContext) -> Optional[OutcomeSignal]:
    if probe.is_closed():
        return ErrorDetected(ctx.last_error or MSG_PAGE_CLOSED)
    return None


def check_returned_to_start(probe: OutcomeProbe, ctx: PollContext) -> Optional[OutcomeSignal]:
    if not probe.returned_to_start():
        return None
    if ctx.last_error:
        return ErrorDetected(ctx.last_error)
    modal = probe.visible_modal_error()
    return ErrorDetected(modal or MSG_RETURNED_TO_START)


# Error signals come before the success message so a tick where both are present always fails.
# The body-text heuristic is only a guess, so it ranks below an explicit success message.
DEFAULT_CHECKS: tuple[Check, ...] = (
    check_stored_error,
    check_guard_state,
    check_visible_modal,
    check_error_alert,
    check_success,
    check_body_hint,
    check_page_closed,
    check_returned_to_start,
)


class OutcomePoller:
    """
    Poll the page every `interval_seconds` until one of the checks resolves or the deadline passes.
    """

    def __init__(
        self,
        probe: OutcomeProbe,
        *,
        timeout_seconds: float = 60,
        interval_seconds: float = 0.1,
        checks: Sequence[Check] = DEFAULT_CHECKS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.probe = probe
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self.checks = tuple(checks)
        self.context = PollContext()
        self._clock = clock
        self._sleep = sleep

    def evaluate(self) -> OutcomeSignal:
        """
        Run one tick of checks in priority order.
        """
        for check in self.checks:
            try:
                signal = check(self.probe, self.context)
            except PageGoneError:
                return ErrorDetected(self._error_after_page_gone())
            except Exception:
                logger.debug("Outcome check %s failed; continuing.", getattr(check, "__name__", check), exc_info=True)
                continue
            if signal is not None:
                return signal
        return PENDING

    def _error_after_page_gone(self) -> str:
        # The sessionStorage mirror outlives the reload; give the new document one read.
        try:
            stored = self.probe.consume_stored_error()
        except Exception as e:
            logger.debug("Stored modal error unavailable after the page went away: %s", e)
            stored = None
        if stored:
            self.context.last_error = stored
        return stored or self.context.last_error or MSG_PAGE_RELOADED

    def poll(self) -> OutcomeSignal:
        deadline = self._clock() + self.timeout_seconds
        while self._clock() < deadline:
            signal = self.evaluate()
            if not isinstance(signal, Pending):
                return signal
            self._sleep(self.interval_seconds)
        return Timeout(self.context.last_error or MSG_TIMEOUT)

    def await_outcome(self) -> str:
        signal = self.poll()
        if isinstance(signal, Success):
            return signal.message
        raise OutcomeError(getattr(signal, "message", "") or MSG_TIMEOUT)
