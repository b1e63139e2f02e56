from __future__ import annotations

"""
Flask-SocketIO server for GeoMMO.

What this file does (in plain English):
- Starts a web socket server (Socket.IO protocol) that browser clients connect to.
- Keeps the authoritative in-memory world: live players and the fixed NPC set
  (see world.py), with player records persisted to a JSON file behind the scenes.
- Wires the session gateway (event_handlers.py) to the chat router, the combat
  resolver and the delivery primitives in message_service.py.
- Serves GET /health for load balancers.

Configuration comes from environment variables (optionally via a .env file);
see _env_* calls below. Nothing here needs a database or any cloud service:
without GEOMMO_FIREBASE_ENABLE=1 only wallet login is offered.
"""

# --- Async server selection & monkey patching (MUST be first, after __future__) ---
import os

_ASYNC_MODE = "threading"
if (os.getenv('GEOMMO_ASYNC_MODE') or '').strip().lower() != 'threading':
    try:
        import eventlet  # type: ignore
        try:
            eventlet.monkey_patch()  # type: ignore[attr-defined]
            _ASYNC_MODE = "eventlet"
        except Exception as e:
            # Note: can't use safe_call here as safe_utils isn't imported yet
            print(f"Warning: eventlet monkey patching failed: {e}")
    except ImportError:
        _ASYNC_MODE = "threading"

import sys
import atexit
import logging
import socket

# Optional .env support
try:
    from dotenv import load_dotenv  # type: ignore
    load_dotenv()
except ImportError:
    pass

from flask import Flask, jsonify, request
from flask_socketio import SocketIO

from auth_service import make_token_verifier
from chat_service import ChatRouter
from combat_inputs import make_input_source
from combat_service import CombatResolver
from event_handlers import SessionGateway, register_handlers
from message_service import SocketTransport
from npc_templates import iter_npc_specs
from persistence_utils import PlayerStore
from rate_limiter import RateLimiter
from safe_utils import safe_call, safe_call_with_default
from task_scheduler import TaskScheduler
from world import World

app = Flask(__name__)
_secret = os.getenv('SECRET_KEY') or 'dev-only-change-me'
if not os.getenv('SECRET_KEY'):
    print("WARNING: Using default dev SECRET_KEY. Set SECRET_KEY env var in production.")
app.config['SECRET_KEY'] = _secret  # never commit real secrets; use env vars


# Structured logging (env-driven):
# - GEOMMO_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR|CRITICAL (default INFO)
# - GEOMMO_LOG_FORMAT: 'json' or 'text' (default text)
def _setup_logging() -> None:
    def _configure_logging():
        level_name = (os.getenv('GEOMMO_LOG_LEVEL') or 'INFO').strip().upper()
        level = getattr(logging, level_name, logging.INFO)
        fmt_mode = (os.getenv('GEOMMO_LOG_FORMAT') or 'text').strip().lower()
        if fmt_mode == 'json':
            class _JsonFormatter(logging.Formatter):
                def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
                    import json as _json
                    payload = {
                        'ts': self.formatTime(record, datefmt='%Y-%m-%dT%H:%M:%S'),
                        'level': record.levelname,
                        'name': record.name,
                        'message': record.getMessage(),
                    }
                    return _json.dumps(payload, ensure_ascii=False)
            handler = logging.StreamHandler()
            handler.setFormatter(_JsonFormatter())
            root = logging.getLogger()
            root.handlers = [handler]
            root.setLevel(level)
        else:
            logging.basicConfig(level=level, format='[%(levelname)s] %(message)s')

    safe_call(_configure_logging)


_setup_logging()
logger = logging.getLogger(__name__)


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else str(v)


def _env_int(name: str, default: int) -> int:
    try:
        val = os.getenv(name)
        if val is None:
            return default
        return int(str(val).strip())
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, os.getenv(name))
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    val = (os.getenv(name) or '').strip().lower()
    if val in ('1', 'true', 'yes', 'on'):
        return True
    if val in ('0', 'false', 'no', 'off'):
        return False
    return default


def _parse_cors_origins(s: str | None) -> str | list[str]:
    """Return '*' (allow all) or a list of allowed origins from CSV env.

    - GEOMMO_CORS_ALLOWED_ORIGINS not set -> '*'
    - Set to '*' (or empty after strip) -> '*'
    - Otherwise, split by comma and strip whitespace.
    """
    if s is None:
        return '*'
    val = s.strip()
    if not val or val == '*':
        return '*'
    parts = [p.strip() for p in val.split(',') if p.strip()]
    return parts or '*'


# Socket.IO heartbeat tuning (configurable)
_PING_INTERVAL = _env_int('GEOMMO_PING_INTERVAL_MS', 25000) / 1000.0
_PING_TIMEOUT = _env_int('GEOMMO_PING_TIMEOUT_MS', 60000) / 1000.0
_CORS_ALLOWED = _parse_cors_origins(os.getenv('GEOMMO_CORS_ALLOWED_ORIGINS'))

socketio = SocketIO(
    app,
    cors_allowed_origins=_CORS_ALLOWED,
    async_mode=_ASYNC_MODE,
    ping_interval=_PING_INTERVAL,
    ping_timeout=_PING_TIMEOUT,
)
if _ASYNC_MODE == "threading":
    logger.info("Running Socket.IO in threading mode")


# --- World state with JSON persistence ---
# An empty GEOMMO_STATE_PATH keeps player records in memory only.
STATE_PATH = _env_str('GEOMMO_STATE_PATH', os.path.join(os.path.dirname(__file__), 'players_state.json')) or None
store = PlayerStore(STATE_PATH, debounce_ms=_env_int('GEOMMO_SAVE_DEBOUNCE_MS', 300))
atexit.register(store.flush)  # one last immediate write on process exit

world = World(store=store, npc_specs=iter_npc_specs())
transport = SocketTransport(socketio)
scheduler = TaskScheduler(socketio.start_background_task, socketio.sleep)
chat = ChatRouter(world)
combat = CombatResolver(world, transport, scheduler,
                        input_source=make_input_source(_env_str('GEOMMO_COMBAT_INPUT', 'client')))
rate_limiter = RateLimiter()
gateway = SessionGateway(
    world, chat, combat, transport,
    rate_limiter=rate_limiter,
    verify_token=make_token_verifier(_env_bool('GEOMMO_FIREBASE_ENABLE', False)),
)
logger.info("World ready: %d NPCs, state file %s", len(world.npcs), STATE_PATH or '(memory only)')


# --- Helper function to get SID ---
def get_sid() -> str | None:
    """Return the Socket.IO session id (sid) for the current request.

    Flask-SocketIO attaches `sid` to `flask.request` at runtime.
    """
    return getattr(request, "sid", None)


register_handlers(socketio, gateway, get_sid)


@app.route('/health')
def health():
    return jsonify({'status': 'healthy', 'players': len(world.all_players())})


if __name__ == '__main__':
    port = _env_int('PORT', 8080)
    host = _env_str('HOST', '127.0.0.1')

    def _get_local_ip() -> str | None:
        # Use a UDP socket trick to discover the primary LAN IP without sending data
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
        finally:
            s.close()

    print("\n=== GeoMMO Server Starting ===")
    print(f"Async mode: {_ASYNC_MODE}")
    print(f"Listening on: {host}:{port}")
    print(f"Socket.IO URL: http://{host}:{port}/socket.io/")
    if host in ("0.0.0.0", "::"):
        lan_ip = safe_call_with_default(_get_local_ip, None)
        if lan_ip:
            print(f"LAN clients can use: http://{lan_ip}:{port}/")
    elif host == "127.0.0.1":
        print("Note: Only this machine can connect. For LAN play, set HOST=0.0.0.0.")
    print("==============================\n")

    try:
        run_kwargs = {"allow_unsafe_werkzeug": True} if _ASYNC_MODE == "threading" else {}
        socketio.run(app, host=host, port=port, debug=False, **run_kwargs)
    except KeyboardInterrupt:
        sys.exit(0)
