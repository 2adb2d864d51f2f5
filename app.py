import asyncio
import concurrent.futures
import threading
import time
from typing import Optional

from flask import Flask, request, jsonify

from ble_session import ConnectionSession, InvalidStateError
from ble_utils import SessionError
from logging_config import configure_logging
from reading_history import summarize
from settings import get_settings


class BackgroundLoop:
    """An asyncio event loop running in a daemon thread; the session lives on it."""

    def __init__(self):
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self._thread is not None:
                return
            self.loop = asyncio.new_event_loop()
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run(self, coro, timeout=30):
        """Run a coroutine on the loop from sync context"""
        self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            # Stop the abandoned coroutine so it cannot act after the response
            future.cancel()
            raise

    def call(self, func, *args, timeout=30):
        """Run a plain callable on the loop thread and return its result"""
        async def _invoke():
            return func(*args)
        return self.run(_invoke(), timeout=timeout)

    def stop(self):
        with self._lock:
            if self._thread is None:
                return
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join(timeout=5)
            self.loop.close()
            self._thread = None
            self.loop = None


def create_app(session_factory=ConnectionSession) -> Flask:
    app = Flask(__name__)
    runner = BackgroundLoop()
    session = session_factory()
    last_alert = {}

    def remember_alert(alert):
        last_alert.update(
            message=alert.message,
            channel=alert.channel,
            observed_at=alert.reading.observed_at,
        )

    session.subscribe("alert", remember_alert)

    app.extensions["moisture_session"] = session
    app.extensions["moisture_loop"] = runner

    def session_error(e):
        code = 409 if isinstance(e, InvalidStateError) else 502
        return jsonify({"error": str(e), "kind": type(e).__name__}), code

    @app.route('/')
    def home():
        return jsonify({
            "status": "Moisture sensor API is running",
            "endpoints": [
                "/session/connect", "/session/mode", "/session/disconnect",
                "/session/status", "/session/history",
            ],
        })

    @app.route('/session/connect', methods=['POST'])
    def session_connect():
        """Discover the sensor and connect to it"""
        try:
            status = runner.run(session.connect(), timeout=get_settings().scan_timeout + 30)
            return jsonify({"status": "success", "session": status.to_dict()})
        except SessionError as e:
            return session_error(e)
        except Exception as e:
            return jsonify({"error": str(e)}), 500

    @app.route('/session/mode', methods=['POST'])
    def session_mode():
        """Toggle periodic/realtime reporting"""
        try:
            mode = runner.run(session.toggle_mode())
            return jsonify({"status": "success", "mode": mode.value, "timestamp": time.time()})
        except SessionError as e:
            return session_error(e)
        except Exception as e:
            return jsonify({"error": str(e)}), 500

    @app.route('/session/disconnect', methods=['POST'])
    def session_disconnect():
        try:
            runner.run(session.disconnect())
            return jsonify({"status": "disconnected"})
        except SessionError as e:
            return session_error(e)
        except Exception as e:
            return jsonify({"error": str(e)}), 500

    @app.route('/session/status', methods=['GET'])
    def session_status():
        try:
            status = runner.call(session.status)
        except Exception as e:
            return jsonify({"error": str(e)}), 500
        payload = status.to_dict()
        payload["last_alert"] = dict(last_alert) or None
        return jsonify(payload)

    @app.route('/session/history', methods=['GET'])
    def session_history():
        limit = request.args.get('limit', type=int)
        try:
            readings = runner.call(session.history.snapshot)
        except Exception as e:
            return jsonify({"error": str(e)}), 500
        if limit is not None and limit >= 0:
            shown = readings[-limit:] if limit else ()
        else:
            shown = readings
        return jsonify({
            "capacity": session.history.capacity,
            "count": len(readings),
            "readings": [r.to_dict() for r in shown],
            "summary": summarize(readings).to_dict(),
        })

    return app


if __name__ == '__main__':
    configure_logging()
    settings = get_settings()
    app = create_app()
    app.run(host=settings.api_host, port=settings.api_port)
