"""
Out-of-process WeasyPrint engine.

Each WeasyPrintEngine owns one spawned child process holding a
WeasyPrintRenderer. The parent talks to it over a Pipe:

    parent -> child   ('render', html, base_url, options) | None (stop)
    child  -> parent  ('ready',) | ('ok', pdf_bytes) | ('error', message)

A render that does not answer within its budget gets the child killed, so
a pathological document can never hold an engine forever.
"""

import logging
import multiprocessing
from typing import Optional

from documents.services.exceptions import RenderCrash, RenderTimeout
from .dto import RenderOptions
from .interfaces import IRenderEngine


logger = logging.getLogger(__name__)

# Fresh interpreter per engine; forking a threaded server process is unsafe
MP_CONTEXT = multiprocessing.get_context('spawn')

JOIN_TIMEOUT = 5.0


def run_engine(conn, stylesheets):
    """Child process entry point: render requests until told to stop."""
    from .weasyprint_renderer import WeasyPrintRenderer

    try:
        renderer = WeasyPrintRenderer(stylesheets=stylesheets)
    except ImportError as e:
        conn.send(('error', str(e)))
        conn.close()
        return

    conn.send(('ready',))
    while True:
        try:
            message = conn.recv()
        except EOFError:
            break
        if message is None:
            break

        _, html, base_url, options = message
        try:
            conn.send(('ok', renderer.render_html_to_pdf(html, base_url, options)))
        except Exception as e:
            # The parent decides what a failed render means for this instance
            conn.send(('error', f"{type(e).__name__}: {e}"))
    conn.close()


class WeasyPrintEngine(IRenderEngine):
    """
    Rendering engine instance backed by a spawned WeasyPrint process.

    Not thread-safe: the pool guarantees one render at a time per instance.
    """

    def __init__(self, base_url: Optional[str] = None, stylesheets: Optional[list] = None):
        self.base_url = base_url
        self.stylesheets = stylesheets or []
        self._process = None
        self._conn = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    def start(self, timeout: float) -> None:
        parent_conn, child_conn = MP_CONTEXT.Pipe()
        process = MP_CONTEXT.Process(
            target=run_engine,
            args=(child_conn, self.stylesheets),
            name='weasyprint-engine',
            daemon=True,
        )
        process.start()
        child_conn.close()
        self._process = process
        self._conn = parent_conn

        if not parent_conn.poll(timeout):
            self.close()
            raise RenderCrash(f"Rendering engine did not become ready within {timeout}s")
        try:
            reply = parent_conn.recv()
        except EOFError:
            self.close()
            raise RenderCrash("Rendering engine exited during startup")
        if reply[0] != 'ready':
            self.close()
            raise RenderCrash(f"Rendering engine failed to start: {reply[1]}")

        logger.debug(f"Started rendering engine pid={process.pid}")

    def render(self, markup: str, options: RenderOptions, timeout: float) -> bytes:
        if not self.is_alive():
            raise RenderCrash("Rendering engine is not running")

        try:
            self._conn.send(('render', markup, self.base_url, options))
        except (BrokenPipeError, OSError) as e:
            raise RenderCrash(f"Rendering engine pipe closed: {e}") from e

        if not self._conn.poll(timeout):
            logger.warning(f"Render exceeded {timeout}s on engine pid={self.pid}, killing it")
            self._shutdown(graceful=False)
            raise RenderTimeout(f"Render exceeded {timeout}s budget")

        try:
            status, payload = self._conn.recv()
        except (EOFError, OSError) as e:
            exitcode = self._process.exitcode if self._process else None
            raise RenderCrash(f"Rendering engine terminated (exit code {exitcode})") from e

        if status != 'ok':
            raise RenderCrash(f"Rendering engine failed: {payload}")
        return payload

    def is_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def close(self) -> None:
        self._shutdown(graceful=True)

    def _shutdown(self, graceful: bool) -> None:
        process, conn = self._process, self._conn
        if process is None:
            return
        self._process = None
        self._conn = None

        if graceful and process.is_alive():
            try:
                conn.send(None)
            except (BrokenPipeError, OSError) as e:
                logger.debug(f"Stop message to engine pid={process.pid} not delivered: {e}")
            process.join(JOIN_TIMEOUT)
        if process.is_alive():
            process.kill()
            process.join(JOIN_TIMEOUT)
        conn.close()
        logger.debug(f"Closed rendering engine pid={process.pid}")
