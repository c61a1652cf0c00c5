"""
Render session - one document from spec to PDF bytes.

The session is an explicit state machine:

    INIT -> CONFIGURING -> NAVIGATING -> WAITING_READY -> [WAITING_SELECTOR]
         -> [DELAYING] -> [EXTRACTING_SELECTOR] -> RENDERING -> DONE | FAILED

Each state has a handler in the transition table that performs the step and
returns the next state. Bracketed states are skipped when the spec does not
ask for them. A session-wide deadline (spec.timeout) wraps every step; when
it expires the failure is always ConversionTimeoutError, whichever step was
suspended at the time.
"""

import asyncio
import logging
import uuid
from contextlib import ExitStack
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from .browser import BrowserEngine, BrowserPage, PrintOptions
from .errors import ConversionTimeoutError, NoBodyError, WaitUntilTimeoutError
from .options import ConversionSpec
from .storage import TempStorage

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Render session states."""
    INIT = "init"
    CONFIGURING = "configuring"
    NAVIGATING = "navigating"
    WAITING_READY = "waiting_ready"
    WAITING_SELECTOR = "waiting_selector"
    DELAYING = "delaying"
    EXTRACTING_SELECTOR = "extracting_selector"
    RENDERING = "rendering"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = (SessionState.DONE, SessionState.FAILED)

# Steps between readiness and rendering, in execution order
_POST_READY_SEQUENCE = (
    SessionState.WAITING_SELECTOR,
    SessionState.DELAYING,
    SessionState.EXTRACTING_SELECTOR,
    SessionState.RENDERING,
)


def _seconds(milliseconds: int) -> Optional[float]:
    """Milliseconds to seconds, with zero meaning no limit."""
    return milliseconds / 1000 if milliseconds > 0 else None


class RenderSession:
    """
    Renders a single ConversionSpec through a BrowserEngine.

    A session is single-use: call run() once. After it returns or raises,
    state is DONE or FAILED and history lists every state visited.
    """

    def __init__(self, spec: ConversionSpec, engine: BrowserEngine, storage: TempStorage):
        self.spec = spec
        self.engine = engine
        self.storage = storage
        self.id = uuid.uuid4().hex[:8]

        self.state = SessionState.INIT
        self.history: List[SessionState] = [SessionState.INIT]
        self.result: Optional[bytes] = None
        self.error: Optional[BaseException] = None

        self._page: Optional[BrowserPage] = None
        self._ready: Optional[asyncio.Future] = None
        self._resources: Optional[ExitStack] = None

        self._transitions: Dict[SessionState, Callable[[], Awaitable[SessionState]]] = {
            SessionState.INIT: self._start,
            SessionState.CONFIGURING: self._configure,
            SessionState.NAVIGATING: self._navigate,
            SessionState.WAITING_READY: self._wait_ready,
            SessionState.WAITING_SELECTOR: self._wait_selector,
            SessionState.DELAYING: self._delay,
            SessionState.EXTRACTING_SELECTOR: self._extract_selector,
            SessionState.RENDERING: self._render,
        }

    async def run(self) -> bytes:
        """
        Drive the session to completion.

        Returns:
            Raw PDF bytes

        Raises:
            ConversionTimeoutError: If spec.timeout elapses at any step
            WaitUntilTimeoutError: If the readiness signal misses waitUntilTimeout
            NoBodyError: If selector extraction finds no body element
        """
        if self.state != SessionState.INIT:
            raise RuntimeError(f"Render session {self.id} already ran")

        source = "url" if self.spec.is_url else "html"
        logger.info(f"Render session {self.id} starting (source={source}, timeout={self.spec.timeout}ms)")

        try:
            async with asyncio.timeout(_seconds(self.spec.timeout)):
                async with self.engine.open_page() as page:
                    self._page = page
                    with ExitStack() as resources:
                        self._resources = resources
                        await self._drive()
        except TimeoutError:
            self._fail(ConversionTimeoutError())
            logger.warning(f"Render session {self.id} timed out in state {self.history[-1].value}")
            raise self.error from None
        except BaseException as e:
            self._fail(e)
            raise
        finally:
            self._page = None
            self._resources = None

        logger.info(f"Render session {self.id} done ({len(self.result)} bytes)")
        return self.result

    async def _drive(self) -> None:
        while self.state not in TERMINAL_STATES:
            handler = self._transitions[self.state]
            self._enter(await handler())

    def _enter(self, state: SessionState) -> None:
        logger.debug(f"Render session {self.id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _fail(self, error: BaseException) -> None:
        self.error = error
        if self.state != SessionState.FAILED:
            self._enter(SessionState.FAILED)

    def _next_after_ready(self, current: SessionState) -> SessionState:
        enabled = {
            SessionState.WAITING_SELECTOR: bool(self.spec.wait_for_selector),
            SessionState.DELAYING: self.spec.delay > 0,
            SessionState.EXTRACTING_SELECTOR: bool(self.spec.selector),
            SessionState.RENDERING: True,
        }
        remaining = _POST_READY_SEQUENCE
        if current in _POST_READY_SEQUENCE:
            remaining = _POST_READY_SEQUENCE[_POST_READY_SEQUENCE.index(current) + 1:]
        return next(state for state in remaining if enabled[state])

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _start(self) -> SessionState:
        return SessionState.CONFIGURING

    async def _configure(self) -> SessionState:
        spec = self.spec
        await self._page.configure(
            viewport_width=spec.viewport_width,
            viewport_height=spec.viewport_height,
            block_ads=spec.block_ads,
            headers=spec.headers,
            emulate_media=spec.emulate_media,
        )
        # Subscribe before navigating so a fast page cannot fire the
        # readiness event before anyone is listening.
        self._ready = self._page.subscribe_ready(spec.wait_until)
        return SessionState.NAVIGATING

    async def _navigate(self) -> SessionState:
        if self.spec.is_url:
            target = self.spec.url
        else:
            path = self._resources.enter_context(self.storage.html_file(self.spec.html))
            target = path.as_uri()

        await self._page.navigate(target)
        return SessionState.WAITING_READY

    async def _wait_ready(self) -> SessionState:
        limit = _seconds(self.spec.wait_until_timeout)
        if limit is None:
            await self._ready
        else:
            try:
                await asyncio.wait_for(self._ready, limit)
            except TimeoutError:
                raise WaitUntilTimeoutError() from None
        return self._next_after_ready(SessionState.WAITING_READY)

    async def _wait_selector(self) -> SessionState:
        limit = _seconds(self.spec.wait_for_selector_timeout)
        try:
            await asyncio.wait_for(self._page.wait_for_selector(self.spec.wait_for_selector), limit)
        except TimeoutError:
            raise ConversionTimeoutError(f"waiting for selector {self.spec.wait_for_selector!r}") from None
        return self._next_after_ready(SessionState.WAITING_SELECTOR)

    async def _delay(self) -> SessionState:
        await asyncio.sleep(self.spec.delay / 1000)
        return self._next_after_ready(SessionState.DELAYING)

    async def _extract_selector(self) -> SessionState:
        markup = await self._page.outer_html(self.spec.selector)
        if not await self._page.replace_body(f"<body>{markup}</body>"):
            raise NoBodyError()
        return SessionState.RENDERING

    async def _render(self) -> SessionState:
        self.result = await self._page.print_pdf(PrintOptions.from_spec(self.spec))
        return SessionState.DONE
