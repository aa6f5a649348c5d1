# main.py: market phase scanner worker
#
# - Refresh loop: one cycle every REFRESH_SECONDS, backoff + jitter on fatal errors
# - Optional HTTP endpoint (RUN_MODE=web) serving the latest snapshot as JSON
# - Phase transitions optionally pushed to Telegram
#
# Environment variables:
# - RUN_MODE: "worker" (default) or "web"
# - PORT: HTTP port for web mode (default 10000)
# - LOG_LEVEL: default INFO
# - REFRESH_SECONDS: default 120
# - BATCH_SIZE / BATCH_PAUSE_MS: concurrency and pacing of per-asset work
# - FAST_INTERVAL: kline interval of the fast RSI (default 1m)
# - FETCH_RETRIES / FETCH_BASE_DELAY_MS / FETCH_TIMEOUT_S / FETCH_RELAY_PREFIX
# - TG_BOT_TOKEN, TG_CHAT_ID

import os
import json
import time
import random
import logging
import threading
from threading import Thread
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from dotenv import load_dotenv

from config import PARAMS, TIMEFRAMES
from exchange import make_fetcher
from notifier import deliver_alerts
from pipeline import run_cycle
from state import StateStore

log = logging.getLogger("scanner")


# ---------------------------
# Published snapshot
# ---------------------------
class SnapshotBoard:
    """Latest finished cycle, swapped whole so readers never see a partial one."""

    def __init__(self):
        self._lock = threading.Lock()
        self._payload = None
        self._error = None

    def publish(self, payload):
        with self._lock:
            self._payload = payload
            self._error = None

    def fail(self, message):
        with self._lock:
            self._error = message

    def read(self):
        """Returns (status, body)."""
        with self._lock:
            if self._error is not None:
                return 500, {"error": self._error}
            if self._payload is None:
                return 503, {"error": "first refresh cycle has not completed yet"}
            return 200, self._payload


# ---------------------------
# HTTP endpoint (web mode)
# ---------------------------
def make_handler(board):
    class SnapshotHandler(BaseHTTPRequestHandler):
        def do_GET(self):
            path = self.path.split("?", 1)[0]
            if path in ("/", "/health", "/healthz"):
                self._send(200, b"ok", "text/plain; charset=utf-8")
            elif path == "/api/index-data":
                status, body = board.read()
                self._send(status, json.dumps(body).encode("utf-8"), "application/json")
            else:
                self.send_response(404)
                self.end_headers()

        def _send(self, status, body, content_type):
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, fmt, *args):
            # reduce noisy HTTP logs
            return

    return SnapshotHandler


def start_http_server(board):
    port = int(os.getenv("PORT", "10000"))
    server = ThreadingHTTPServer(("0.0.0.0", port), make_handler(board))
    log.info(f"HTTP server listening on 0.0.0.0:{port}")
    server.serve_forever()


def load_timeframes():
    tf = dict(TIMEFRAMES)
    fast = os.getenv("FAST_INTERVAL")
    if fast:
        tf["fast"] = (fast, TIMEFRAMES["fast"][1])
    return tf


# ---------------------------
# Entry point
# ---------------------------
def main():
    load_dotenv()

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )

    run_mode = os.getenv("RUN_MODE", "worker").lower()  # "worker" or "web"
    refresh = int(os.getenv("REFRESH_SECONDS", str(PARAMS["refresh_seconds"])))
    batch_size = int(os.getenv("BATCH_SIZE", str(PARAMS["batch_size"])))
    batch_pause = int(os.getenv("BATCH_PAUSE_MS", str(PARAMS["batch_pause_ms"]))) / 1000
    timeframes = load_timeframes()

    # Created once; every cycle reads and updates the same store
    store = StateStore()
    board = SnapshotBoard()

    if run_mode == "web":
        Thread(target=start_http_server, args=(board,), daemon=True).start()

    log.info("Starting market phase scanner")
    log.info(
        f"RUN_MODE={run_mode} | REFRESH={refresh}s | BATCH={batch_size} | "
        f"FAST={timeframes['fast'][0]}"
    )

    base_backoff = 5
    max_backoff = 180

    fetcher = None

    while True:
        try:
            if fetcher is None:
                fetcher = make_fetcher()

            snapshot = run_cycle(
                fetcher,
                store,
                batch_size=batch_size,
                batch_pause=batch_pause,
                timeframes=timeframes,
            )
            board.publish(snapshot.to_dict())
            deliver_alerts(snapshot.new_alerts)

            time.sleep(max(10, refresh))

            # reset backoff after successful cycle
            base_backoff = 5

        except KeyboardInterrupt:
            log.info("Received KeyboardInterrupt. Exiting.")
            break

        except Exception as e:
            log.error(f"FATAL | {type(e).__name__}: {e}")
            board.fail(f"{type(e).__name__}: {e}")
            fetcher = None  # rebuild the HTTP session on next loop

            # exponential backoff with jitter
            sleep_for = min(max_backoff, base_backoff) + random.randint(0, 3)
            log.info(f"Retrying in {sleep_for}s...")
            time.sleep(sleep_for)
            base_backoff = min(max_backoff, base_backoff * 2)


if __name__ == "__main__":
    main()
